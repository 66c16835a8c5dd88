from __future__ import annotations

import argparse
import logging
import signal
import threading

from stocksync.config import FileStoreSettingsProvider, get_settings
from stocksync.db import SessionLocal, init_db
from stocksync.errors import UnknownStoreError
from stocksync.models import SyncRun
from stocksync.pipeline import fixture_client_factory, live_client_factory, run_all_stores, run_store
from stocksync.scheduler import AutoSyncLoop


def format_run(run: SyncRun) -> str:
    return (
        f"run={run.id} store={run.store_id} status={run.status} processed={run.items_processed} "
        f"created={run.items_created} updated={run.items_updated} skipped={run.items_skipped} "
        f"failed={run.items_failed}"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="ERP to inventory extension stock sync")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--store", help="Sync a single store by id")
    target.add_argument("--all", action="store_true", help="Sync every enabled store")
    parser.add_argument("--mode", default="live", choices=["live", "fixture"])
    parser.add_argument("--loop", action="store_true", help="Run the auto-sync loop until interrupted")
    parser.add_argument("--log-level", default="INFO")

    args = parser.parse_args()
    if not (args.store or args.all or args.loop):
        parser.error("one of --store, --all or --loop is required")

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    settings = get_settings()
    provider = FileStoreSettingsProvider(settings.stores_file)
    init_db()

    client_factory = fixture_client_factory(settings) if args.mode == "fixture" else live_client_factory(settings)

    cancel_event = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: cancel_event.set())
    signal.signal(signal.SIGTERM, lambda *_: cancel_event.set())

    if args.loop:
        loop = AutoSyncLoop(
            provider,
            lambda store, stop: run_store(store, SessionLocal, client_factory, settings, stop, "scheduled"),
            settings,
        )
        loop.run_forever(cancel_event)
        return

    if args.store:
        store = provider.get(args.store)
        if store is None:
            raise UnknownStoreError(args.store)
        print(format_run(run_store(store, SessionLocal, client_factory, settings, cancel_event)))
        return

    for result in run_all_stores(provider.snapshot(), SessionLocal, client_factory, settings, cancel_event, "manual"):
        if result.run is not None:
            print(format_run(result.run))
        else:
            print(f"store={result.store_id} status=error error={result.error}")


if __name__ == "__main__":
    main()
