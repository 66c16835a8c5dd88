from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from stocksync.api.errors import not_found, store_busy
from stocksync.api.schemas import StatisticsOut, SyncRunOut
from stocksync.config import StoreSettingsProvider, SyncSettings
from stocksync.errors import StoreBusyError
from stocksync.models import SyncRun
from stocksync.pipeline import ClientFactory, SyncPipeline
from stocksync.planning import sync_statistics
from stocksync.repository import ProductRepository


def _utc_isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    # SQLite drops the offset on reload; stored values are always UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def to_run_out(run: SyncRun) -> SyncRunOut:
    started = _utc_isoformat(run.started_at) or ""
    finished = _utc_isoformat(run.finished_at)
    return SyncRunOut(
        id=run.id,
        store_id=run.store_id,
        trigger=run.trigger,
        status=run.status,
        items_processed=run.items_processed,
        items_created=run.items_created,
        items_updated=run.items_updated,
        items_skipped=run.items_skipped,
        items_failed=run.items_failed,
        error_detail=run.error_detail,
        details=dict(run.details or {}),
        started_at=started,
        finished_at=finished,
    )


def list_sync_runs(db: Session, store_id: str | None = None, limit: int = 50) -> list[SyncRunOut]:
    query = select(SyncRun).order_by(SyncRun.started_at.desc()).limit(limit)
    if store_id:
        query = query.where(SyncRun.store_id == store_id)
    return [to_run_out(run) for run in db.execute(query).scalars()]


def get_sync_run(db: Session, run_id: str) -> SyncRunOut:
    run = db.get(SyncRun, run_id)
    if run is None:
        raise not_found("Sync run not found", run_id=run_id)
    return to_run_out(run)


def trigger_store_sync(
    db: Session,
    store_id: str,
    provider: StoreSettingsProvider,
    client_factory: ClientFactory,
    settings: SyncSettings,
) -> SyncRunOut:
    store = provider.get(store_id)
    if store is None:
        raise not_found("Store not found", store_id=store_id)

    clients = client_factory(store)
    try:
        run = SyncPipeline(db, store, clients, settings, trigger="manual").run()
    except StoreBusyError as exc:
        raise store_busy(store_id) from exc
    finally:
        clients.close()
    return to_run_out(run)


def statistics(db: Session) -> StatisticsOut:
    stats = sync_statistics(ProductRepository(db).all())
    return StatisticsOut(total=stats.total, needs_sync=stats.needs_sync, differences=stats.differences)
