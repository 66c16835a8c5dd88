from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from stocksync.db import Base


JsonDict = dict[str, object]

STATUS_CREATED = "Created"
STATUS_UPDATED = "Updated"
STATUS_SYNCED = "Synced"
STATUS_NO_SKU = "Error - No SKU"
STATUS_INVALID_EXT_ID = "Error - Invalid ATUM ID"

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"
RUN_CANCELLED = "cancelled"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    internal_id: Mapped[str | None] = mapped_column(String(64), index=True)
    legacy_source_id: Mapped[str | None] = mapped_column(String(64), index=True)
    sku: Mapped[str | None] = mapped_column(String(128), unique=True, index=True)
    barcode: Mapped[str | None] = mapped_column(String(128), index=True)
    storefront_id: Mapped[str | None] = mapped_column(String(64), index=True)
    inventory_ext_id: Mapped[str | None] = mapped_column(String(64), index=True)

    name: Mapped[str] = mapped_column(String(512), default="")
    category: Mapped[str] = mapped_column(String(128), default="")
    unit: Mapped[str] = mapped_column(String(64), default="")
    group_name: Mapped[str] = mapped_column(String(128), default="")
    vat_code: Mapped[str] = mapped_column(String(32), default="")
    image_data: Mapped[str] = mapped_column(Text, default="")
    zoom_info: Mapped[str] = mapped_column(Text, default="")

    source_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), default=Decimal("0"))
    ext_quantity: Mapped[int] = mapped_column(Integer, default=0)

    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    wholesale_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    sale_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    purchase_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    discount: Mapped[Decimal | None] = mapped_column(Numeric(7, 3), nullable=True)

    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sync_status: Mapped[str] = mapped_column(String(128), default="")
    last_sync_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    @property
    def has_erp_identity(self) -> bool:
        return bool(self.internal_id or self.legacy_source_id)


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(String(64), index=True)
    trigger: Mapped[str] = mapped_column(String(16), default="manual")
    status: Mapped[str] = mapped_column(String(32), index=True, default=RUN_RUNNING)
    items_processed: Mapped[int] = mapped_column(Integer, default=0)
    items_created: Mapped[int] = mapped_column(Integer, default=0)
    items_updated: Mapped[int] = mapped_column(Integer, default=0)
    items_skipped: Mapped[int] = mapped_column(Integer, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, default=0)
    error_detail: Mapped[str | None] = mapped_column(Text)
    details: Mapped[JsonDict] = mapped_column(JSON, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_final(self) -> bool:
        return self.finished_at is not None

    def finalize(self, status: str, error_detail: str | None = None) -> None:
        if self.is_final:
            raise RuntimeError(f"Sync run {self.id} is already finalized as {self.status}")
        self.status = status
        self.error_detail = error_detail
        self.finished_at = utc_now()
