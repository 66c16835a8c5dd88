import os

os.environ.setdefault("STOCKSYNC_DATABASE_URL", "sqlite://")

import threading
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker

from stocksync.clients.base import ErpSource, InventoryClient
from stocksync.config import SyncSettings
from stocksync.db import Base, create_db_engine
from stocksync.extraction import ErpPayload, FieldDefinition, InventoryRecord
from stocksync.locks import KeyedLocks
from stocksync.models import Product
from stocksync.planning import BatchRequest
from stocksync.reconcile import BatchResponse, CreateResult, UpdateResult

ERP_FIELDS = [
    FieldDefinition("ITEM.MTRL", "int"),
    FieldDefinition("ITEM.CODE"),
    FieldDefinition("ITEM.CODE1"),
    FieldDefinition("ITEM.NAME"),
    FieldDefinition("ITEM.MTRL_ITEMTRDATA_QTY1", "float"),
]


@pytest.fixture()
def session_factory() -> sessionmaker:
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def session(session_factory: sessionmaker) -> Session:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def settings() -> SyncSettings:
    return SyncSettings(
        database_url="sqlite://",
        inter_chunk_delay_seconds=0,
        store_delay_seconds=0,
        submit_chunk_size=50,
        storefront_concurrency=4,
        loop_idle_seconds=0,
    )


@pytest.fixture()
def locks() -> KeyedLocks:
    return KeyedLocks()


def make_product(session: Session, **overrides) -> Product:
    values = {"name": "Widget", "source_quantity": Decimal("0"), "ext_quantity": 0}
    values.update(overrides)
    product = Product(**values)
    session.add(product)
    session.commit()
    return product


class StaticErpSource(ErpSource):
    def __init__(self, rows: list[list[str | None]], fields: list[FieldDefinition] | None = None) -> None:
        self.rows = rows
        self.fields = fields or ERP_FIELDS
        self.calls = 0

    def fetch_payload(self) -> ErpPayload:
        self.calls += 1
        return ErpPayload(fields=self.fields, rows=self.rows, total_count=len(self.rows))


class FailingErpSource(ErpSource):
    def fetch_payload(self) -> ErpPayload:
        raise RuntimeError("ERP unavailable")


class RecordingInventoryClient(InventoryClient):
    """Accepts every item, optionally raising for selected chunk numbers (1-based)."""

    def __init__(
        self,
        records: list[InventoryRecord] | None = None,
        fail_chunks: set[int] | None = None,
        fetch_error: Exception | None = None,
        on_submit=None,
    ) -> None:
        self.records = records or []
        self.fail_chunks = fail_chunks or set()
        self.fetch_error = fetch_error
        self.on_submit = on_submit
        self.submitted: list[BatchRequest] = []
        self.next_id = 900

    def fetch_inventory(self) -> list[InventoryRecord]:
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.records)

    def submit_batch(self, request: BatchRequest) -> BatchResponse:
        self.submitted.append(request)
        if self.on_submit is not None:
            self.on_submit(len(self.submitted))
        if len(self.submitted) in self.fail_chunks:
            raise RuntimeError(f"chunk {len(self.submitted)} rejected")
        creates = []
        for item in request.creates:
            creates.append(CreateResult(id=self.next_id, name=item.name))
            self.next_id += 1
        return BatchResponse(creates=creates, updates=[UpdateResult(id=item.ext_id) for item in request.updates])


@pytest.fixture()
def cancel_event() -> threading.Event:
    return threading.Event()
