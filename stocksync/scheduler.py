from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from stocksync.config import StoreConfig, StoreSettingsProvider, SyncSettings
from stocksync.models import utc_now

logger = logging.getLogger(__name__)

AUTO_SYNC_JOB_ID = "auto_sync"

StoreRunner = Callable[[StoreConfig, threading.Event], object]


class AutoSyncLoop:
    """Runs every auto-sync store whose interval has elapsed, one store at a time."""

    def __init__(self, provider: StoreSettingsProvider, runner: StoreRunner, settings: SyncSettings) -> None:
        self.provider = provider
        self.runner = runner
        self.settings = settings
        self.last_attempt: dict[str, datetime] = {}

    def due_stores(self, stores: list[StoreConfig], now: datetime) -> list[StoreConfig]:
        due: list[StoreConfig] = []
        for store in stores:
            if not store.enabled or not store.sync.auto_sync:
                continue
            last = self.last_attempt.get(store.store_id)
            if last is None or now - last >= timedelta(minutes=store.sync.interval_minutes):
                due.append(store)
        return due

    def tick(self, now: datetime | None = None, stop_event: threading.Event | None = None) -> list[str]:
        now = now or utc_now()
        stop_event = stop_event or threading.Event()
        # One snapshot per tick; a run never sees settings change underneath it.
        stores = self.provider.snapshot()
        ran: list[str] = []

        for index, store in enumerate(self.due_stores(stores, now)):
            if index and stop_event.wait(self.settings.store_delay_seconds):
                break
            self.last_attempt[store.store_id] = now
            try:
                self.runner(store, stop_event)
            except Exception:
                logger.exception("Scheduled sync for store %s failed", store.store_id)
            ran.append(store.store_id)
        return ran

    def start(self, stop_event: threading.Event) -> BackgroundScheduler:
        """Schedule ``tick`` on a background thread; the first tick fires immediately."""
        scheduler = BackgroundScheduler(timezone=timezone.utc)
        scheduler.add_job(
            self._scheduled_tick,
            IntervalTrigger(seconds=max(1.0, self.settings.loop_idle_seconds)),
            kwargs={"stop_event": stop_event},
            id=AUTO_SYNC_JOB_ID,
            name="Sync due auto-sync stores",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Auto-sync scheduler started")
        return scheduler

    def run_forever(self, stop_event: threading.Event) -> None:
        scheduler = self.start(stop_event)
        try:
            stop_event.wait()
        finally:
            # Waits for an in-flight tick; the runner sees the same stop event and winds down.
            scheduler.shutdown(wait=True)
            logger.info("Auto-sync scheduler stopped")

    def _scheduled_tick(self, stop_event: threading.Event) -> None:
        if stop_event.is_set():
            return
        try:
            self.tick(stop_event=stop_event)
        except Exception:
            logger.exception("Auto-sync tick failed")
