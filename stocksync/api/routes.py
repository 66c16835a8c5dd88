from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stocksync.api.deps import get_client_factory, get_store_provider, get_sync_settings, require_admin_token
from stocksync.api.schemas import StatisticsOut, SyncRunOut
from stocksync.api.services import get_sync_run, list_sync_runs, statistics, trigger_store_sync
from stocksync.config import StoreSettingsProvider, SyncSettings
from stocksync.db import get_db
from stocksync.pipeline import ClientFactory

router = APIRouter(prefix="/v1/sync", tags=["sync"], dependencies=[Depends(require_admin_token)])


@router.get("/runs", response_model=list[SyncRunOut])
def sync_runs(
    store_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[SyncRunOut]:
    return list_sync_runs(db, store_id=store_id, limit=limit)


@router.get("/runs/{run_id}", response_model=SyncRunOut)
def sync_run(run_id: str, db: Session = Depends(get_db)) -> SyncRunOut:
    return get_sync_run(db, run_id)


@router.post("/stores/{store_id}/runs", response_model=SyncRunOut, status_code=201)
def trigger_sync(
    store_id: str,
    db: Session = Depends(get_db),
    provider: StoreSettingsProvider = Depends(get_store_provider),
    client_factory: ClientFactory = Depends(get_client_factory),
    settings: SyncSettings = Depends(get_sync_settings),
) -> SyncRunOut:
    return trigger_store_sync(db, store_id, provider, client_factory, settings)


@router.get("/statistics", response_model=StatisticsOut)
def sync_statistics(db: Session = Depends(get_db)) -> StatisticsOut:
    return statistics(db)
