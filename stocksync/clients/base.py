from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from stocksync.extraction import ErpPayload, InventoryRecord
from stocksync.planning import BatchRequest
from stocksync.reconcile import BatchResponse


@dataclass
class StorefrontProduct:
    id: str
    sku: str = ""
    name: str = ""


class ErpSource(ABC):
    @abstractmethod
    def fetch_payload(self) -> ErpPayload:
        raise NotImplementedError


class InventoryClient(ABC):
    @abstractmethod
    def fetch_inventory(self) -> list[InventoryRecord]:
        raise NotImplementedError

    @abstractmethod
    def submit_batch(self, request: BatchRequest) -> BatchResponse:
        raise NotImplementedError


class StorefrontClient(ABC):
    @abstractmethod
    def find_by_sku(self, sku: str) -> StorefrontProduct | None:
        raise NotImplementedError

    @abstractmethod
    def create(self, name: str, sku: str, price: Decimal | None) -> StorefrontProduct | None:
        raise NotImplementedError
