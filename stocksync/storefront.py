from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from decimal import Decimal

from stocksync.clients.base import StorefrontClient
from stocksync.errors import SyncCancelled
from stocksync.models import Product, utc_now
from stocksync.planning import display_name
from stocksync.repository import ProductRepository

STATUS_MATCHED = "Matched in storefront"
STATUS_CREATED_DRAFT = "Created as draft in storefront"
STATUS_CREATE_FAILED = "Error - Failed to create in storefront"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkCandidate:
    product_id: str
    sku: str
    name: str
    price: Decimal | None


@dataclass(frozen=True)
class LinkOutcome:
    product_id: str
    storefront_id: str | None
    status: str
    error: str | None = None


@dataclass
class LinkCounts:
    matched: int = 0
    created: int = 0
    errors: int = 0


def link_candidates(products: list[Product]) -> list[LinkCandidate]:
    return [
        LinkCandidate(product_id=product.id, sku=product.sku, name=display_name(product), price=product.price)
        for product in products
        if product.sku and not product.storefront_id
    ]


class StorefrontLinker:
    """Finds or drafts a storefront product for every product with a sku but no storefront id."""

    def __init__(self, repo: ProductRepository, client: StorefrontClient, concurrency: int = 10) -> None:
        self.repo = repo
        self.client = client
        self.concurrency = max(1, concurrency)

    def link(self, cancel_event: threading.Event | None = None) -> LinkCounts:
        cancel_event = cancel_event or threading.Event()
        candidates = link_candidates(self.repo.all())
        counts = LinkCounts()
        if not candidates:
            return counts

        logger.info("Linking %s products to the storefront with %s workers", len(candidates), self.concurrency)
        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="storefront")
        try:
            futures: list[Future[LinkOutcome]] = [
                executor.submit(self._resolve, candidate, cancel_event) for candidate in candidates
            ]
            for future in as_completed(futures):
                if cancel_event.is_set():
                    raise SyncCancelled("Storefront linking cancelled")
                self._merge(future.result(), counts)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        self.repo.commit()
        logger.info(
            "Storefront linking finished: %s matched, %s created, %s errors",
            counts.matched,
            counts.created,
            counts.errors,
        )
        return counts

    def _resolve(self, candidate: LinkCandidate, cancel_event: threading.Event) -> LinkOutcome:
        if cancel_event.is_set():
            return LinkOutcome(product_id=candidate.product_id, storefront_id=None, status="", error="cancelled")
        try:
            existing = self.client.find_by_sku(candidate.sku)
            if existing is not None:
                return LinkOutcome(product_id=candidate.product_id, storefront_id=existing.id, status=STATUS_MATCHED)

            created = self.client.create(candidate.name, candidate.sku, candidate.price)
            if created is None:
                return LinkOutcome(product_id=candidate.product_id, storefront_id=None, status=STATUS_CREATE_FAILED)
            return LinkOutcome(product_id=candidate.product_id, storefront_id=created.id, status=STATUS_CREATED_DRAFT)
        except Exception as exc:
            logger.warning("Storefront lookup failed for SKU %s: %s", candidate.sku, exc)
            return LinkOutcome(
                product_id=candidate.product_id,
                storefront_id=None,
                status=f"Error - {exc}",
                error=str(exc),
            )

    def _merge(self, outcome: LinkOutcome, counts: LinkCounts) -> None:
        product = self.repo.get(outcome.product_id)
        if product is None:
            return

        if outcome.storefront_id:
            product.storefront_id = outcome.storefront_id
            if outcome.status == STATUS_MATCHED:
                counts.matched += 1
            else:
                counts.created += 1
        else:
            counts.errors += 1
            product.last_sync_error = outcome.error or outcome.status
        product.last_sync_status = outcome.status
        product.last_synced_at = utc_now()
