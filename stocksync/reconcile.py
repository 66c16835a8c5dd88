from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from stocksync.models import STATUS_SYNCED, Product, utc_now
from stocksync.planning import BatchRequest, CreateItem, UpdateItem
from stocksync.repository import ProductRepository

logger = logging.getLogger(__name__)


@dataclass
class CreateResult:
    id: int
    name: str = ""
    product_id: int | None = None
    error: str | None = None


@dataclass
class UpdateResult:
    id: int
    error: str | None = None


@dataclass
class BatchResponse:
    creates: list[CreateResult] = field(default_factory=list)
    updates: list[UpdateResult] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> BatchResponse:
        return cls(
            creates=[
                CreateResult(
                    id=_as_int(item.get("id")),
                    name=str(item.get("name") or ""),
                    product_id=_as_int(item.get("product_id")) or None,
                    error=_error_message(item.get("error")),
                )
                for item in payload.get("create") or []
            ],
            updates=[
                UpdateResult(id=_as_int(item.get("id")), error=_error_message(item.get("error")))
                for item in payload.get("update") or []
            ],
        )


@dataclass
class ReconcileCounts:
    created: int = 0
    updated: int = 0
    errors: int = 0

    def add(self, other: ReconcileCounts) -> None:
        self.created += other.created
        self.updated += other.updated
        self.errors += other.errors


def _as_int(value: object) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return 0


def _error_message(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        message = value.get("message") or value.get("code")
        return str(message) if message else "unknown error"
    text = str(value).strip()
    return text or None


class BatchReconciler:
    def __init__(self, repo: ProductRepository) -> None:
        self.repo = repo

    def apply(self, request: BatchRequest, response: BatchResponse) -> ReconcileCounts:
        counts = ReconcileCounts()

        for index, result in enumerate(response.creates):
            if result.error:
                logger.error("Inventory batch create error for %r: %s", result.name, result.error)
                counts.errors += 1
                continue
            if result.id <= 0:
                logger.error("Inventory batch create result for %r has invalid id %s", result.name, result.id)
                counts.errors += 1
                continue

            item = self._correlate_create(request, index, result)
            product = self.repo.get(item.product_id) if item else None
            if product is None:
                logger.warning("Could not correlate created inventory entry %s (%r) to a product", result.id, result.name)
                counts.errors += 1
                continue

            product.inventory_ext_id = str(result.id)
            self._mark_synced(product, item.quantity)
            counts.created += 1

        for result in response.updates:
            if result.error:
                logger.error("Inventory batch update error for id %s: %s", result.id, result.error)
                counts.errors += 1
                continue

            update_item = self._correlate_update(request, result)
            product = self.repo.get(update_item.product_id) if update_item else None
            if product is None:
                logger.warning("Could not correlate updated inventory entry %s to a product", result.id)
                counts.errors += 1
                continue

            self._mark_synced(product, update_item.quantity)
            counts.updated += 1

        self.repo.commit()
        logger.info(
            "Applied inventory batch response: %s created, %s updated, %s errors",
            counts.created,
            counts.updated,
            counts.errors,
        )
        return counts

    def mark_failed(self, request: BatchRequest, message: str) -> int:
        """Record a whole-chunk failure on every product in the request."""
        failed = 0
        for product_id in request.product_ids():
            product = self.repo.get(product_id)
            if product is not None:
                product.last_sync_error = message
            failed += 1
        self.repo.commit()
        return failed

    @staticmethod
    def _correlate_create(request: BatchRequest, index: int, result: CreateResult) -> CreateItem | None:
        if result.product_id:
            echoed = str(result.product_id)
            for item in request.creates:
                if item.storefront_id == echoed:
                    return item

        named = [item for item in request.creates if item.name == result.name]
        if len(named) == 1:
            return named[0]
        if named and index < len(request.creates) and request.creates[index].name == result.name:
            return request.creates[index]
        return None

    @staticmethod
    def _correlate_update(request: BatchRequest, result: UpdateResult) -> UpdateItem | None:
        for item in request.updates:
            if item.ext_id == result.id:
                return item
        return None

    @staticmethod
    def _mark_synced(product: Product, quantity: int) -> None:
        product.ext_quantity = quantity
        product.last_synced_at = utc_now()
        product.last_sync_status = STATUS_SYNCED
        product.last_sync_error = None
