from __future__ import annotations

import json
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    database_url: str = "sqlite:///./stocksync.db"
    stores_file: str = "stores.json"
    admin_token: str = "dev-admin-token"
    erp_timeout_seconds: float = 30.0
    inventory_timeout_seconds: float = 30.0
    storefront_timeout_seconds: float = 1200.0
    max_fetch_retries: int = 2
    retry_backoff_seconds: float = 0.6
    submit_chunk_size: int = 50
    inter_chunk_delay_seconds: float = 0.5
    store_delay_seconds: float = 5.0
    storefront_concurrency: int = 10
    loop_idle_seconds: float = 60.0

    model_config = SettingsConfigDict(env_file=".env", env_prefix="STOCKSYNC_")


@lru_cache
def get_settings() -> SyncSettings:
    return SyncSettings()


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ErpConnection(_Frozen):
    base_url: str = "https://go.s1cloud.net/s1services"
    app_id: str = "703"
    token: str = ""
    s1_code: str = ""
    filters: str = "ITEM.MTRL_ITEMTRDATA_QTY1=1&ITEM.MTRL_ITEMTRDATA_QTY1_TO=9999"


class InventoryConnection(_Frozen):
    base_url: str = ""
    consumer_key: str = ""
    consumer_secret: str = ""
    location_id: int = 870
    location_name: str = "store1_location"


class StorefrontConnection(_Frozen):
    base_url: str
    consumer_key: str = ""
    consumer_secret: str = ""
    api_version: str = "wc/v3"


class FieldMapping(_Frozen):
    """Maps each ERP record attribute to the source field that carries it."""

    internal_id: str = "ITEM.MTRL"
    sku: str = "ITEM.CODE"
    barcode: str = "ITEM.CODE1"
    name: str = "ITEM.NAME"
    category: str = "ITEM.MTRCATEGORY"
    unit: str = "ITEM.MTRUNIT1"
    group: str = "ITEM.MTRGROUP"
    vat: str = "ITEM.VAT"
    image_data: str = "ITEM.MTRL_ITEDOCDATA_SODATA"
    zoom_info: str = "ZOOMINFO"
    price: str = "ITEM.PRICER"
    wholesale_price: str = "ITEM.PRICEW"
    sale_price: str = "ITEM.MTRL_ITEMTRDATA_SALLPRICE"
    purchase_price: str = "ITEM.MTRL_ITEMTRDATA_PURLPRICE"
    discount: str = "ITEM.SODISCOUNT"
    quantity: str = "ITEM.MTRL_ITEMTRDATA_QTY1"

    def by_source_field(self) -> dict[str, str]:
        return {source: attribute for attribute, source in self.model_dump().items() if source}


class MatchingOptions(_Frozen):
    primary_field: Literal["sku", "barcode"] = "sku"
    secondary_field: Literal["sku", "barcode"] = "barcode"
    create_missing: bool = True
    update_existing: bool = True


class SyncOptions(_Frozen):
    auto_sync: bool = True
    interval_minutes: int = Field(default=15, ge=1)
    max_batch_size: int = Field(default=200, ge=1)


class StoreConfig(_Frozen):
    store_id: str
    name: str = ""
    enabled: bool = True
    erp: ErpConnection = ErpConnection()
    inventory: InventoryConnection = InventoryConnection()
    storefront: StorefrontConnection | None = None
    field_mapping: FieldMapping = FieldMapping()
    matching: MatchingOptions = MatchingOptions()
    sync: SyncOptions = SyncOptions()


class StoreSettingsProvider(ABC):
    @abstractmethod
    def snapshot(self) -> list[StoreConfig]:
        raise NotImplementedError

    def get(self, store_id: str) -> StoreConfig | None:
        for store in self.snapshot():
            if store.store_id == store_id:
                return store
        return None


class StaticStoreSettingsProvider(StoreSettingsProvider):
    def __init__(self, stores: list[StoreConfig]) -> None:
        self._stores = list(stores)

    def snapshot(self) -> list[StoreConfig]:
        return list(self._stores)


class FileStoreSettingsProvider(StoreSettingsProvider):
    """Reads `{"stores": [...]}` from disk on every snapshot."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def snapshot(self) -> list[StoreConfig]:
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        return [StoreConfig.model_validate(item) for item in payload.get("stores", [])]
