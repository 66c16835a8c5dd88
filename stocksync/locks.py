from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field

from stocksync.errors import StoreBusyError


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class KeyedLocks:
    """Process-wide registry of one lock per key.

    An entry lives only while some caller holds or waits on it, so the registry
    stays as small as the set of keys currently in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _acquire_entry(self, key: str) -> _LockEntry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.users += 1
            return entry

    def _release_entry(self, key: str, entry: _LockEntry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def is_held(self, key: str) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        entry = self._acquire_entry(key)
        try:
            if not entry.lock.acquire(blocking=False):
                raise StoreBusyError(key)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._release_entry(key, entry)

    @contextmanager
    def _held(self, key: str) -> Iterator[None]:
        entry = self._acquire_entry(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(key, entry)

    @contextmanager
    def hold_all(self, keys: Iterable[str]) -> Iterator[None]:
        # Sorted acquisition keeps two holders of overlapping key sets from deadlocking.
        with ExitStack() as stack:
            for key in sorted({key for key in keys if key}):
                stack.enter_context(self._held(key))
            yield


store_locks = KeyedLocks()
identity_locks = KeyedLocks()
