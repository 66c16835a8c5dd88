from __future__ import annotations

from decimal import Decimal

from stocksync.clients.base import StorefrontClient, StorefrontProduct
from stocksync.clients.http import RetryingHttpClient
from stocksync.config import StorefrontConnection


class WooCommerceClient(StorefrontClient):
    def __init__(
        self,
        connection: StorefrontConnection,
        timeout_seconds: float = 1200.0,
        max_fetch_retries: int = 2,
        retry_backoff_seconds: float = 0.6,
    ) -> None:
        self.connection = connection
        self.http = RetryingHttpClient(
            base_url=connection.base_url,
            timeout_seconds=timeout_seconds,
            max_fetch_retries=max_fetch_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            label="storefront",
        )
        self.products_path = f"/wp-json/{connection.api_version}/products"

    def _auth_params(self) -> dict[str, str]:
        return {
            "consumer_key": self.connection.consumer_key,
            "consumer_secret": self.connection.consumer_secret,
        }

    def find_by_sku(self, sku: str) -> StorefrontProduct | None:
        response = self.http.request("GET", self.products_path, params={**self._auth_params(), "sku": sku})
        for item in response.json() or []:
            if str(item.get("sku") or "") == sku and item.get("id"):
                return StorefrontProduct(id=str(item["id"]), sku=sku, name=str(item.get("name") or ""))
        return None

    def create(self, name: str, sku: str, price: Decimal | None) -> StorefrontProduct | None:
        response = self.http.request(
            "POST",
            self.products_path,
            params=self._auth_params(),
            json={
                "name": name,
                "sku": sku,
                "regular_price": str(price) if price is not None else "",
                "status": "draft",
                "manage_stock": False,
            },
        )
        item = response.json() or {}
        if not item.get("id"):
            return None
        return StorefrontProduct(id=str(item["id"]), sku=sku, name=str(item.get("name") or name))
