from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal

from stocksync.models import STATUS_INVALID_EXT_ID, STATUS_NO_SKU, Product, utc_now
from stocksync.repository import ProductRepository

logger = logging.getLogger(__name__)

POSITIVE_INT_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class CreateItem:
    product_id: str
    name: str
    sku: str
    quantity: int
    barcode: str = ""
    storefront_id: str | None = None


@dataclass(frozen=True)
class UpdateItem:
    product_id: str
    ext_id: int
    quantity: int


@dataclass
class BatchRequest:
    creates: list[CreateItem] = field(default_factory=list)
    updates: list[UpdateItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.creates) + len(self.updates)

    def product_ids(self) -> list[str]:
        return [item.product_id for item in self.updates] + [item.product_id for item in self.creates]


@dataclass
class BatchPlan:
    creates: list[CreateItem] = field(default_factory=list)
    updates: list[UpdateItem] = field(default_factory=list)
    max_batch_size: int = 0
    deferred_creates: int = 0
    deferred_updates: int = 0
    gated: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.creates and not self.updates

    @property
    def limited(self) -> bool:
        return bool(self.deferred_creates or self.deferred_updates)

    def chunks(self, size: int) -> Iterator[BatchRequest]:
        """Split into sequential requests of at most `size` items, updates first."""
        size = max(1, size)
        items: list[CreateItem | UpdateItem] = [*self.updates, *self.creates]
        for start in range(0, len(items), size):
            chunk = items[start : start + size]
            yield BatchRequest(
                creates=[item for item in chunk if isinstance(item, CreateItem)],
                updates=[item for item in chunk if isinstance(item, UpdateItem)],
            )

    def summary(self) -> dict[str, int]:
        return {
            "creates": len(self.creates),
            "updates": len(self.updates),
            "deferred_creates": self.deferred_creates,
            "deferred_updates": self.deferred_updates,
            "gated": self.gated,
        }


@dataclass
class SyncStatistics:
    total: int
    needs_sync: int
    differences: int


def floor_quantity(quantity: Decimal | int | None) -> int:
    if quantity is None:
        return 0
    return max(0, math.floor(quantity))


def target_quantity(product: Product) -> int:
    # Products the ERP no longer reports are driven to zero rather than left with stale stock.
    if not product.has_erp_identity:
        return 0
    return floor_quantity(product.source_quantity)


def parse_ext_id(value: str | None) -> int | None:
    text = (value or "").strip()
    if not POSITIVE_INT_RE.fullmatch(text):
        return None
    number = int(text)
    return number if number > 0 else None


def is_create_candidate(product: Product) -> bool:
    return (
        product.has_erp_identity
        and (product.source_quantity or 0) > 0
        and not product.inventory_ext_id
    )


def display_name(product: Product) -> str:
    return product.name if product.name else f"Product {product.sku}"


class BatchPlanner:
    def __init__(self, repo: ProductRepository) -> None:
        self.repo = repo

    def plan(self, max_batch_size: int) -> BatchPlan:
        products = self.repo.all()
        logger.info("Planning inventory batch over %s products", len(products))

        plan = BatchPlan(max_batch_size=max_batch_size)
        creates: list[CreateItem] = []
        updates: list[UpdateItem] = []

        for product in products:
            if is_create_candidate(product):
                if not product.sku:
                    logger.warning("Product %s (%s) has no SKU; excluded from batch", product.id, product.name)
                    self._gate(product, STATUS_NO_SKU)
                    plan.gated += 1
                    continue
                creates.append(
                    CreateItem(
                        product_id=product.id,
                        name=display_name(product),
                        sku=product.sku,
                        quantity=target_quantity(product),
                        barcode=product.barcode or "",
                        storefront_id=product.storefront_id,
                    )
                )
            elif product.inventory_ext_id:
                ext_id = parse_ext_id(product.inventory_ext_id)
                if ext_id is None:
                    logger.warning(
                        "Product %s (SKU %s) has invalid extension id %r; excluded from batch",
                        product.id,
                        product.sku,
                        product.inventory_ext_id,
                    )
                    self._gate(product, STATUS_INVALID_EXT_ID)
                    plan.gated += 1
                    continue

                target = target_quantity(product)
                if product.ext_quantity == target:
                    logger.debug("Product %s already in sync at %s", product.id, target)
                    continue
                updates.append(UpdateItem(product_id=product.id, ext_id=ext_id, quantity=target))
                logger.debug("Queued product %s for update: %s -> %s", product.id, product.ext_quantity, target)

        plan.creates, plan.updates = self._limit(creates, updates, max_batch_size, plan)

        # Gate writes must survive a crash between planning and submission.
        self.repo.commit()
        logger.info(
            "Prepared batch plan: %s creates, %s updates, %s deferred, %s gated",
            len(plan.creates),
            len(plan.updates),
            plan.deferred_creates + plan.deferred_updates,
            plan.gated,
        )
        return plan

    @staticmethod
    def _limit(
        creates: list[CreateItem],
        updates: list[UpdateItem],
        max_batch_size: int,
        plan: BatchPlan,
    ) -> tuple[list[CreateItem], list[UpdateItem]]:
        if len(creates) + len(updates) <= max_batch_size:
            return creates, updates

        logger.warning(
            "Batch has %s items which exceeds max batch size %s; deferring the rest",
            len(creates) + len(updates),
            max_batch_size,
        )
        kept_updates = updates[:max_batch_size]
        remaining = max_batch_size - len(kept_updates)
        kept_creates = creates[:remaining] if remaining > 0 else []
        plan.deferred_updates = len(updates) - len(kept_updates)
        plan.deferred_creates = len(creates) - len(kept_creates)
        return kept_creates, kept_updates

    @staticmethod
    def _gate(product: Product, status: str) -> None:
        product.last_sync_status = status
        product.last_synced_at = utc_now()


def sync_statistics(products: Iterable[Product]) -> SyncStatistics:
    total = needs_sync = differences = 0
    for product in products:
        total += 1
        if not product.inventory_ext_id:
            if is_create_candidate(product):
                needs_sync += 1
        elif product.ext_quantity != target_quantity(product):
            needs_sync += 1
            differences += 1
    return SyncStatistics(total=total, needs_sync=needs_sync, differences=differences)
