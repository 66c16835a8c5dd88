import threading
from datetime import datetime, timedelta, timezone

from stocksync.config import StaticStoreSettingsProvider, StoreConfig, SyncOptions
from stocksync.scheduler import AUTO_SYNC_JOB_ID, AutoSyncLoop


class MutableProvider(StaticStoreSettingsProvider):
    def replace(self, stores):
        self._stores = list(stores)


def _store(store_id: str, **sync) -> StoreConfig:
    return StoreConfig(store_id=store_id, sync=SyncOptions(**sync))


def test_tick_runs_due_stores_once_per_interval(settings):
    ran: list[str] = []
    provider = StaticStoreSettingsProvider([_store("a", interval_minutes=15), _store("b", interval_minutes=5)])
    loop = AutoSyncLoop(provider, lambda store, stop: ran.append(store.store_id), settings)
    start = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    assert loop.tick(start) == ["a", "b"]
    assert loop.tick(start + timedelta(minutes=6)) == ["b"]
    assert loop.tick(start + timedelta(minutes=16)) == ["a", "b"]
    assert ran == ["a", "b", "b", "a", "b"]


def test_tick_skips_disabled_and_manual_only_stores(settings):
    provider = StaticStoreSettingsProvider(
        [_store("auto"), _store("manual", auto_sync=False), StoreConfig(store_id="off", enabled=False)]
    )
    loop = AutoSyncLoop(provider, lambda store, stop: None, settings)

    assert loop.tick(datetime(2026, 1, 1, tzinfo=timezone.utc)) == ["auto"]


def test_store_failure_does_not_block_others(settings):
    def runner(store, stop):
        if store.store_id == "bad":
            raise RuntimeError("boom")

    provider = StaticStoreSettingsProvider([_store("bad"), _store("good")])
    loop = AutoSyncLoop(provider, runner, settings)

    assert loop.tick(datetime(2026, 1, 1, tzinfo=timezone.utc)) == ["bad", "good"]


def test_settings_are_refreshed_each_tick(settings):
    ran: list[str] = []
    provider = MutableProvider([_store("a")])
    loop = AutoSyncLoop(provider, lambda store, stop: ran.append(store.store_id), settings)
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)

    loop.tick(start)
    provider.replace([_store("a"), _store("new")])
    loop.tick(start + timedelta(minutes=1))

    assert ran == ["a", "new"]


def test_run_forever_stops_on_event(settings):
    stop_event = threading.Event()
    calls: list[str] = []

    def runner(store, stop):
        calls.append(store.store_id)
        stop.set()

    loop = AutoSyncLoop(StaticStoreSettingsProvider([_store("a")]), runner, settings)
    loop.run_forever(stop_event)

    assert calls == ["a"]
    assert stop_event.is_set()


def test_start_schedules_single_coalesced_job(settings):
    settings.loop_idle_seconds = 30
    stop_event = threading.Event()
    loop = AutoSyncLoop(StaticStoreSettingsProvider([]), lambda store, stop: None, settings)

    scheduler = loop.start(stop_event)
    try:
        job = scheduler.get_job(AUTO_SYNC_JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval == timedelta(seconds=30)
        assert len(scheduler.get_jobs()) == 1
    finally:
        stop_event.set()
        scheduler.shutdown(wait=True)


def test_scheduled_tick_is_skipped_after_stop(settings):
    ran: list[str] = []
    stop_event = threading.Event()
    stop_event.set()
    provider = StaticStoreSettingsProvider([_store("a")])
    loop = AutoSyncLoop(provider, lambda store, stop: ran.append(store.store_id), settings)

    loop._scheduled_tick(stop_event)

    assert ran == []
