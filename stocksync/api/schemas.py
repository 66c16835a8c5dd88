from pydantic import BaseModel


class SyncRunOut(BaseModel):
    id: str
    store_id: str
    trigger: str
    status: str
    items_processed: int
    items_created: int
    items_updated: int
    items_skipped: int
    items_failed: int
    error_detail: str | None = None
    details: dict[str, object] = {}
    started_at: str
    finished_at: str | None = None


class StatisticsOut(BaseModel):
    total: int
    needs_sync: int
    differences: int
