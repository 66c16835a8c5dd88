from __future__ import annotations

import logging
from typing import Any

from stocksync.clients.base import InventoryClient
from stocksync.clients.http import RetryingHttpClient
from stocksync.config import InventoryConnection
from stocksync.extraction import InventoryRecord, inventory_record_from_payload
from stocksync.planning import BatchRequest
from stocksync.reconcile import BatchResponse

PER_PAGE = 100
MAX_PAGES = 100

logger = logging.getLogger(__name__)


class AtumInventoryClient(InventoryClient):
    def __init__(
        self,
        connection: InventoryConnection,
        timeout_seconds: float = 30.0,
        max_fetch_retries: int = 2,
        retry_backoff_seconds: float = 0.6,
    ) -> None:
        self.connection = connection
        self.http = RetryingHttpClient(
            base_url=connection.base_url,
            timeout_seconds=timeout_seconds,
            max_fetch_retries=max_fetch_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            label="inventory",
        )

    def _auth_params(self) -> dict[str, str]:
        return {
            "consumer_key": self.connection.consumer_key,
            "consumer_secret": self.connection.consumer_secret,
        }

    def fetch_inventory(self) -> list[InventoryRecord]:
        records: list[InventoryRecord] = []
        for page in range(1, MAX_PAGES + 1):
            response = self.http.request(
                "GET",
                "/wp-json/wc/v3/atum/inventories",
                params={
                    **self._auth_params(),
                    "location": self.connection.location_id,
                    "per_page": PER_PAGE,
                    "page": page,
                },
            )
            items = response.json() or []
            records.extend(inventory_record_from_payload(item) for item in items)
            logger.debug("Fetched inventory page %s with %s items", page, len(items))
            if len(items) < PER_PAGE:
                break
        logger.info("Fetched %s inventory entries for location %s", len(records), self.connection.location_id)
        return records

    def submit_batch(self, request: BatchRequest) -> BatchResponse:
        response = self.http.request(
            "POST",
            "/wp-json/wc/v3/atum/inventories/batch",
            params=self._auth_params(),
            json=self.build_payload(request),
        )
        return BatchResponse.from_payload(response.json() or {})

    def build_payload(self, request: BatchRequest) -> dict[str, Any]:
        creates: list[dict[str, Any]] = []
        for item in request.creates:
            entry: dict[str, Any] = {
                "name": item.name,
                "is_main": False,
                "location": [self.connection.location_id],
                "meta_data": {
                    "sku": item.sku,
                    "manage_stock": True,
                    "stock_quantity": item.quantity,
                    "backorders": False,
                    "stock_status": "instock" if item.quantity > 0 else "outofstock",
                    "barcode": item.barcode,
                },
            }
            if item.storefront_id:
                entry["product_id"] = int(item.storefront_id) if item.storefront_id.isdigit() else item.storefront_id
            creates.append(entry)

        updates = [{"id": item.ext_id, "meta_data": {"stock_quantity": item.quantity}} for item in request.updates]
        return {"create": creates, "update": updates}
