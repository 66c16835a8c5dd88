from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from functools import partial

from sqlalchemy.orm import Session

from stocksync.clients.atum import AtumInventoryClient
from stocksync.clients.base import ErpSource, InventoryClient, StorefrontClient
from stocksync.clients.fixture import FixtureErpSource, FixtureInventoryClient, FixtureStorefrontClient
from stocksync.clients.softone import SoftOneClient
from stocksync.clients.woocommerce import WooCommerceClient
from stocksync.config import StoreConfig, SyncSettings
from stocksync.errors import SyncCancelled
from stocksync.extraction import extract_records
from stocksync.locks import KeyedLocks, store_locks
from stocksync.matching.engine import MatchingEngine, MatchResult, ProductAction
from stocksync.models import RUN_CANCELLED, RUN_COMPLETED, RUN_FAILED, RUN_RUNNING, SyncRun
from stocksync.planning import BatchPlan, BatchPlanner
from stocksync.reconcile import BatchReconciler, ReconcileCounts
from stocksync.repository import ProductRepository
from stocksync.storefront import StorefrontLinker

logger = logging.getLogger(__name__)


@dataclass
class StoreClients:
    erp: ErpSource
    inventory: InventoryClient
    storefront: StorefrontClient | None = None

    def close(self) -> None:
        for client in (self.erp, self.inventory, self.storefront):
            http = getattr(client, "http", None)
            if http is not None:
                http.close()


ClientFactory = Callable[[StoreConfig], StoreClients]


def build_clients(store: StoreConfig, settings: SyncSettings, mode: str = "live") -> StoreClients:
    if mode == "fixture":
        return StoreClients(
            erp=FixtureErpSource(),
            inventory=FixtureInventoryClient(),
            storefront=FixtureStorefrontClient() if store.storefront else None,
        )

    retry = {
        "max_fetch_retries": settings.max_fetch_retries,
        "retry_backoff_seconds": settings.retry_backoff_seconds,
    }
    storefront = None
    if store.storefront is not None:
        storefront = WooCommerceClient(store.storefront, timeout_seconds=settings.storefront_timeout_seconds, **retry)
    return StoreClients(
        erp=SoftOneClient(store.erp, timeout_seconds=settings.erp_timeout_seconds, **retry),
        inventory=AtumInventoryClient(store.inventory, timeout_seconds=settings.inventory_timeout_seconds, **retry),
        storefront=storefront,
    )


@dataclass
class RunCounters:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, result: MatchResult) -> None:
        self.processed += 1
        if not result.success:
            self.failed += 1
        elif result.action == ProductAction.CREATED:
            self.created += 1
        elif result.action == ProductAction.UPDATED:
            self.updated += 1
        elif result.action == ProductAction.SKIPPED:
            self.skipped += 1


class SyncPipeline:
    def __init__(
        self,
        db: Session,
        store: StoreConfig,
        clients: StoreClients,
        settings: SyncSettings,
        cancel_event: threading.Event | None = None,
        trigger: str = "manual",
        locks: KeyedLocks = store_locks,
    ) -> None:
        self.db = db
        self.store = store
        self.clients = clients
        self.settings = settings
        self.cancel_event = cancel_event or threading.Event()
        self.trigger = trigger
        self.locks = locks
        self.repo = ProductRepository(db)
        self.counters = RunCounters()
        self.details: dict[str, object] = {}

    def run(self) -> SyncRun:
        with self.locks.hold(self.store.store_id):
            return self._run_locked()

    def _run_locked(self) -> SyncRun:
        run = SyncRun(store_id=self.store.store_id, trigger=self.trigger, status=RUN_RUNNING)
        self.db.add(run)
        self.db.commit()
        logger.info("Sync run %s started for store %s (%s)", run.id, self.store.store_id, self.trigger)

        status = RUN_COMPLETED
        error_detail: str | None = None
        try:
            self._ingest_erp()
            self._ingest_inventory()
            self._link_storefront()
            plan = BatchPlanner(self.repo).plan(self.store.sync.max_batch_size)
            self.details["plan"] = plan.summary()
            self._submit(plan)
        except SyncCancelled as exc:
            self.db.rollback()
            status = RUN_CANCELLED
            error_detail = str(exc) or "Cancelled"
            logger.warning("Sync run %s for store %s cancelled", run.id, self.store.store_id)
        except Exception as exc:
            self.db.rollback()
            status = RUN_FAILED
            error_detail = f"{type(exc).__name__}: {exc}"
            logger.exception("Sync run %s for store %s failed", run.id, self.store.store_id)

        run.items_processed = self.counters.processed
        run.items_created = self.counters.created
        run.items_updated = self.counters.updated
        run.items_skipped = self.counters.skipped
        run.items_failed = self.counters.failed
        run.details = dict(self.details)
        run.finalize(status, error_detail)
        self.db.commit()
        logger.info(
            "Sync run %s finished: status=%s processed=%s created=%s updated=%s skipped=%s failed=%s",
            run.id,
            status,
            run.items_processed,
            run.items_created,
            run.items_updated,
            run.items_skipped,
            run.items_failed,
        )
        return run

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise SyncCancelled("Cancelled by operator")

    def _ingest_erp(self) -> None:
        self._check_cancelled()
        payload = self.clients.erp.fetch_payload()
        records = extract_records(payload.fields, payload.rows, self.store.field_mapping)
        logger.info("Extracted %s ERP records for store %s", len(records), self.store.store_id)

        engine = MatchingEngine(self.repo, self.store.matching)
        phase = RunCounters()
        for record in records:
            self._check_cancelled()
            result = engine.process_erp_record(record)
            phase.record(result)
            self.counters.record(result)
        self.details["erp"] = asdict(phase)

    def _ingest_inventory(self) -> None:
        self._check_cancelled()
        try:
            records = self.clients.inventory.fetch_inventory()
        except Exception as exc:
            # Planning still runs against what is already stored.
            logger.error("Inventory fetch failed for store %s: %s", self.store.store_id, exc)
            self.counters.failed += 1
            self.details["inventory"] = {"fetch_error": str(exc)}
            return

        engine = MatchingEngine(self.repo, self.store.matching)
        phase = RunCounters()
        for record in records:
            self._check_cancelled()
            result = engine.process_inventory_record(record)
            phase.record(result)
            self.counters.record(result)
        self.details["inventory"] = asdict(phase)

    def _link_storefront(self) -> None:
        if self.clients.storefront is None:
            return
        self._check_cancelled()
        linker = StorefrontLinker(self.repo, self.clients.storefront, self.settings.storefront_concurrency)
        counts = linker.link(self.cancel_event)
        self.counters.failed += counts.errors
        self.details["storefront"] = asdict(counts)

    def _submit(self, plan: BatchPlan) -> None:
        totals = ReconcileCounts()
        chunks = 0
        if plan.is_empty:
            logger.info("Nothing to submit for store %s", self.store.store_id)

        reconciler = BatchReconciler(self.repo)
        try:
            for index, chunk in enumerate(plan.chunks(self.settings.submit_chunk_size)):
                if index and self.cancel_event.wait(self.settings.inter_chunk_delay_seconds):
                    raise SyncCancelled("Cancelled by operator")
                self._check_cancelled()
                chunks += 1
                try:
                    response = self.clients.inventory.submit_batch(chunk)
                    totals.add(reconciler.apply(chunk, response))
                except Exception as exc:
                    self.db.rollback()
                    logger.exception("Inventory batch chunk %s for store %s failed", index + 1, self.store.store_id)
                    totals.errors += reconciler.mark_failed(chunk, f"Batch submission failed: {exc}")
        finally:
            # Chunks already applied are committed; the run reports them even when stopped early.
            self.counters.failed += totals.errors
            self.details["submit"] = {**asdict(totals), "chunks": chunks}


@dataclass
class StoreRunResult:
    store_id: str
    run: SyncRun | None = None
    error: str | None = None


def run_store(
    store: StoreConfig,
    session_factory: Callable[[], Session],
    client_factory: ClientFactory,
    settings: SyncSettings,
    cancel_event: threading.Event | None = None,
    trigger: str = "manual",
    locks: KeyedLocks = store_locks,
) -> SyncRun:
    clients = client_factory(store)
    try:
        with session_factory() as db:
            run = SyncPipeline(db, store, clients, settings, cancel_event, trigger, locks).run()
            db.refresh(run)
            db.expunge(run)
            return run
    finally:
        clients.close()


def run_all_stores(
    stores: Sequence[StoreConfig],
    session_factory: Callable[[], Session],
    client_factory: ClientFactory,
    settings: SyncSettings,
    cancel_event: threading.Event | None = None,
    trigger: str = "scheduled",
    locks: KeyedLocks = store_locks,
) -> list[StoreRunResult]:
    cancel_event = cancel_event or threading.Event()
    results: list[StoreRunResult] = []
    enabled = [store for store in stores if store.enabled]

    for index, store in enumerate(enabled):
        if index and cancel_event.wait(settings.store_delay_seconds):
            logger.warning("Multi-store sync cancelled before store %s", store.store_id)
            break
        try:
            run = run_store(store, session_factory, client_factory, settings, cancel_event, trigger, locks)
            results.append(StoreRunResult(store_id=store.store_id, run=run))
        except Exception as exc:
            logger.exception("Sync for store %s could not run", store.store_id)
            results.append(StoreRunResult(store_id=store.store_id, error=str(exc)))
    return results


def fixture_client_factory(settings: SyncSettings) -> ClientFactory:
    return partial(build_clients, settings=settings, mode="fixture")


def live_client_factory(settings: SyncSettings) -> ClientFactory:
    return partial(build_clients, settings=settings, mode="live")
