from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from stocksync.config import FieldMapping
from stocksync.errors import ErpResponseError
from stocksync.matching.normalization import normalize_code, parse_decimal

NUMERIC_ATTRIBUTES = frozenset({"price", "wholesale_price", "sale_price", "purchase_price", "discount", "quantity"})


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    type: str = "string"


@dataclass
class ErpRecord:
    internal_id: str = ""
    sku: str = ""
    barcode: str = ""
    name: str = ""
    category: str = ""
    unit: str = ""
    group: str = ""
    vat: str = ""
    image_data: str = ""
    zoom_info: str = ""
    price: Decimal | None = None
    wholesale_price: Decimal | None = None
    sale_price: Decimal | None = None
    purchase_price: Decimal | None = None
    discount: Decimal | None = None
    quantity: Decimal | None = None

    def code(self, field: str) -> str:
        return normalize_code(getattr(self, field, ""))


@dataclass
class InventoryRecord:
    ext_id: str
    name: str = ""
    sku: str = ""
    barcode: str = ""
    quantity: int = 0
    product_id: str | None = None


@dataclass
class ErpPayload:
    fields: list[FieldDefinition]
    rows: list[list[str | None]]
    total_count: int = 0


def extract_records(
    fields: Sequence[FieldDefinition],
    rows: Sequence[Sequence[str | None]],
    mapping: FieldMapping,
) -> list[ErpRecord]:
    attribute_by_field = mapping.by_source_field()
    # Resolve column positions once; unmapped source fields are dropped here.
    columns = [attribute_by_field.get(field.name) for field in fields]

    records: list[ErpRecord] = []
    for row in rows:
        record = ErpRecord()
        for attribute, value in zip(columns, row):
            if attribute is None:
                continue
            if attribute in NUMERIC_ATTRIBUTES:
                setattr(record, attribute, parse_decimal(value))
            else:
                setattr(record, attribute, value if value is not None else "")
        records.append(record)
    return records


def parse_erp_payload(payload: Mapping[str, Any]) -> ErpPayload:
    if not payload.get("success", False):
        raise ErpResponseError("ERP returned an unsuccessful response")
    raw_fields = payload.get("fields")
    raw_rows = payload.get("rows")
    if not isinstance(raw_fields, list) or not isinstance(raw_rows, list):
        raise ErpResponseError("ERP response is missing fields or rows")

    fields = [FieldDefinition(name=str(item.get("name", "")), type=str(item.get("type", "string"))) for item in raw_fields]
    rows: list[list[str | None]] = []
    for raw_row in raw_rows:
        if not isinstance(raw_row, list):
            raise ErpResponseError("ERP row is not a list of values")
        rows.append([None if value is None else str(value) for value in raw_row])

    total = payload.get("totalcount", len(rows))
    try:
        total_count = int(total or 0)
    except (TypeError, ValueError) as exc:
        raise ErpResponseError(f"ERP totalcount is not a number: {total!r}") from exc
    return ErpPayload(fields=fields, rows=rows, total_count=total_count)


def inventory_record_from_payload(item: Mapping[str, Any]) -> InventoryRecord:
    meta = item.get("meta_data") or {}
    quantity = parse_decimal(meta.get("stock_quantity"))
    product_id = item.get("product_id")
    return InventoryRecord(
        ext_id=normalize_code(item.get("id")),
        name=str(item.get("name") or ""),
        sku=normalize_code(meta.get("sku")),
        barcode=normalize_code(meta.get("barcode")),
        quantity=int(quantity) if quantity is not None else 0,
        product_id=normalize_code(product_id) or None,
    )
