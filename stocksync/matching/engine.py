from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from stocksync.config import MatchingOptions
from stocksync.extraction import ErpRecord, InventoryRecord
from stocksync.locks import KeyedLocks, identity_locks
from stocksync.matching.normalization import blank_to_none, normalize_code
from stocksync.models import STATUS_CREATED, STATUS_UPDATED, Product, utc_now
from stocksync.repository import ProductRepository

logger = logging.getLogger(__name__)


class ProductAction(str, Enum):
    CREATED = "Created"
    UPDATED = "Updated"
    SKIPPED = "Skipped"
    ERROR = "Error"


@dataclass
class MatchResult:
    product: Product | None
    action: ProductAction
    match_type: str
    success: bool = True
    error: str | None = None


ErpStrategy = Callable[[ProductRepository, ErpRecord, MatchingOptions], "Product | None"]
InventoryStrategy = Callable[[ProductRepository, InventoryRecord], "Product | None"]


def match_by_internal_id(repo: ProductRepository, record: ErpRecord, options: MatchingOptions) -> Product | None:
    internal_id = record.code("internal_id")
    return repo.by_internal_id(internal_id) if internal_id else None


def match_by_primary_code(repo: ProductRepository, record: ErpRecord, options: MatchingOptions) -> Product | None:
    code = record.code(options.primary_field)
    return repo.by_code_unidentified(code) if code else None


def match_by_secondary_code(repo: ProductRepository, record: ErpRecord, options: MatchingOptions) -> Product | None:
    code = record.code(options.secondary_field)
    return repo.by_code_unidentified(code) if code else None


def match_by_ext_id(repo: ProductRepository, record: InventoryRecord) -> Product | None:
    return repo.by_ext_id(record.ext_id) if record.ext_id else None


def match_by_sku(repo: ProductRepository, record: InventoryRecord) -> Product | None:
    return repo.by_sku(record.sku) if record.sku else None


ERP_STRATEGIES: tuple[tuple[str, ErpStrategy], ...] = (
    ("internal_id", match_by_internal_id),
    ("primary_code", match_by_primary_code),
    ("secondary_code", match_by_secondary_code),
)

INVENTORY_STRATEGIES: tuple[tuple[str, InventoryStrategy], ...] = (
    ("ext_id", match_by_ext_id),
    ("sku", match_by_sku),
)


class MatchingEngine:
    def __init__(
        self,
        repo: ProductRepository,
        options: MatchingOptions | None = None,
        locks: KeyedLocks = identity_locks,
    ) -> None:
        self.repo = repo
        self.options = options or MatchingOptions()
        self.locks = locks

    def process_erp_record(self, record: ErpRecord) -> MatchResult:
        keys = [f"internal:{record.code('internal_id')}", f"sku:{record.code('sku')}", f"sku:{record.code('barcode')}"]
        try:
            with self.locks.hold_all(key for key in keys if not key.endswith(":")):
                result = self._upsert_erp(record)
                self.repo.commit()
        except SQLAlchemyError as exc:
            self.repo.rollback()
            logger.warning("Failed to persist ERP record internal_id=%s sku=%s: %s", record.internal_id, record.sku, exc)
            return MatchResult(product=None, action=ProductAction.ERROR, match_type="none", success=False, error=str(exc))
        return result

    def process_inventory_record(self, record: InventoryRecord) -> MatchResult:
        keys = [f"ext:{record.ext_id}", f"sku:{record.sku}"]
        try:
            with self.locks.hold_all(key for key in keys if not key.endswith(":")):
                result = self._upsert_inventory(record)
                self.repo.commit()
        except SQLAlchemyError as exc:
            self.repo.rollback()
            logger.warning("Failed to persist inventory record ext_id=%s sku=%s: %s", record.ext_id, record.sku, exc)
            return MatchResult(product=None, action=ProductAction.ERROR, match_type="none", success=False, error=str(exc))
        return result

    def find_erp_match(self, record: ErpRecord) -> tuple[Product | None, str]:
        for match_type, strategy in ERP_STRATEGIES:
            product = strategy(self.repo, record, self.options)
            if product is not None:
                return product, match_type
        return None, "none"

    def find_inventory_match(self, record: InventoryRecord) -> tuple[Product | None, str]:
        for match_type, strategy in INVENTORY_STRATEGIES:
            product = strategy(self.repo, record)
            if product is not None:
                return product, match_type
        return None, "none"

    def _upsert_erp(self, record: ErpRecord) -> MatchResult:
        product, match_type = self.find_erp_match(record)

        if product is None:
            if not self.options.create_missing:
                logger.debug("Skipping unmatched ERP record internal_id=%s", record.internal_id)
                return MatchResult(product=None, action=ProductAction.SKIPPED, match_type=match_type)
            product = Product(source_quantity=Decimal("0"), ext_quantity=0)
            self._apply_erp_fields(product, record)
            product.last_synced_at = utc_now()
            product.last_sync_status = STATUS_CREATED
            self.repo.add(product)
            self._claim_sku(product, record.sku)
            logger.info("Created product %s from ERP record internal_id=%s", product.id, record.internal_id)
            return MatchResult(product=product, action=ProductAction.CREATED, match_type=match_type)

        if not self.options.update_existing:
            logger.debug("Skipping update of product %s (updates disabled)", product.id)
            return MatchResult(product=product, action=ProductAction.SKIPPED, match_type=match_type)

        self._apply_erp_fields(product, record)
        self._claim_sku(product, record.sku)
        product.last_synced_at = utc_now()
        product.last_sync_status = STATUS_UPDATED
        logger.info("Updated product %s via %s match", product.id, match_type)
        return MatchResult(product=product, action=ProductAction.UPDATED, match_type=match_type)

    def _upsert_inventory(self, record: InventoryRecord) -> MatchResult:
        product, match_type = self.find_inventory_match(record)

        if product is None:
            product = Product(
                inventory_ext_id=blank_to_none(record.ext_id),
                name=record.name,
                ext_quantity=record.quantity,
                source_quantity=Decimal("0"),
                last_synced_at=utc_now(),
                last_sync_status=STATUS_CREATED,
            )
            self.repo.add(product)
            self._claim_sku(product, record.sku)
            logger.info("Created extension-only product %s from extension id %s", product.id, record.ext_id)
            return MatchResult(product=product, action=ProductAction.CREATED, match_type=match_type)

        product.inventory_ext_id = blank_to_none(record.ext_id)
        product.ext_quantity = record.quantity
        if not product.name and record.name:
            product.name = record.name
        if not product.sku and record.sku:
            self._claim_sku(product, record.sku)
        product.last_synced_at = utc_now()
        product.last_sync_status = STATUS_UPDATED
        logger.info("Updated product %s with extension data via %s match", product.id, match_type)
        return MatchResult(product=product, action=ProductAction.UPDATED, match_type=match_type)

    def _apply_erp_fields(self, product: Product, record: ErpRecord) -> None:
        product.internal_id = blank_to_none(record.internal_id)
        product.barcode = blank_to_none(record.barcode)
        product.legacy_source_id = blank_to_none(record.sku)
        product.name = record.name
        product.category = record.category
        product.unit = record.unit
        product.group_name = record.group
        product.vat_code = record.vat
        product.image_data = record.image_data
        product.zoom_info = record.zoom_info

        # An unparseable number is not evidence of zero; keep the previous value.
        for attribute in ("price", "wholesale_price", "sale_price", "purchase_price", "discount"):
            value = getattr(record, attribute)
            if value is not None:
                setattr(product, attribute, value)
        if record.quantity is not None:
            product.source_quantity = record.quantity

    def _claim_sku(self, product: Product, sku: str) -> None:
        clean = normalize_code(sku)
        if not clean:
            product.sku = None
            return
        if product.sku == clean:
            return

        holder = self.repo.by_sku(clean)
        if holder is not None and holder.id != product.id:
            product.last_sync_error = f"SKU {clean} is already assigned to product {holder.id}"
            logger.warning("Product %s cannot take SKU %s held by product %s", product.id, clean, holder.id)
            return
        product.sku = clean
        product.last_sync_error = None
