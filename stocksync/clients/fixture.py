from __future__ import annotations

import json
from decimal import Decimal
from itertools import count
from pathlib import Path

from stocksync.clients.base import ErpSource, InventoryClient, StorefrontClient, StorefrontProduct
from stocksync.extraction import ErpPayload, InventoryRecord, inventory_record_from_payload, parse_erp_payload
from stocksync.planning import BatchRequest
from stocksync.reconcile import BatchResponse, CreateResult, UpdateResult

FIXTURES_DIR = Path(__file__).resolve().parents[1] / "fixtures"


def load_fixture(name: str) -> dict[str, object]:
    return json.loads((FIXTURES_DIR / name).read_text(encoding="utf-8"))


class FixtureErpSource(ErpSource):
    def __init__(self, fixture_name: str = "softone_items.json") -> None:
        self.fixture_name = fixture_name

    def fetch_payload(self) -> ErpPayload:
        return parse_erp_payload(load_fixture(self.fixture_name))


class FixtureInventoryClient(InventoryClient):
    """Serves a static inventory listing and accepts every batch item."""

    def __init__(self, fixture_name: str = "atum_inventory.json", first_new_id: int = 5000) -> None:
        self.fixture_name = fixture_name
        self._ids = count(first_new_id)
        self.submitted: list[BatchRequest] = []

    def fetch_inventory(self) -> list[InventoryRecord]:
        payload = load_fixture(self.fixture_name)
        return [inventory_record_from_payload(item) for item in payload.get("items", [])]

    def submit_batch(self, request: BatchRequest) -> BatchResponse:
        self.submitted.append(request)
        return BatchResponse(
            creates=[
                CreateResult(
                    id=next(self._ids),
                    name=item.name,
                    product_id=int(item.storefront_id) if item.storefront_id and item.storefront_id.isdigit() else None,
                )
                for item in request.creates
            ],
            updates=[UpdateResult(id=item.ext_id) for item in request.updates],
        )


class FixtureStorefrontClient(StorefrontClient):
    def __init__(self, known: dict[str, str] | None = None, first_new_id: int = 7000) -> None:
        self.known = dict(known or {})
        self._ids = count(first_new_id)

    def find_by_sku(self, sku: str) -> StorefrontProduct | None:
        product_id = self.known.get(sku)
        return StorefrontProduct(id=product_id, sku=sku) if product_id else None

    def create(self, name: str, sku: str, price: Decimal | None) -> StorefrontProduct | None:
        product_id = str(next(self._ids))
        self.known[sku] = product_id
        return StorefrontProduct(id=product_id, sku=sku, name=name)
