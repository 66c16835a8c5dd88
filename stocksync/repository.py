from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from stocksync.models import Product


class ProductRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, product_id: str) -> Product | None:
        return self.db.get(Product, product_id)

    def by_internal_id(self, internal_id: str) -> Product | None:
        return self.db.execute(select(Product).where(Product.internal_id == internal_id).limit(1)).scalar_one_or_none()

    def by_code_unidentified(self, code: str) -> Product | None:
        """First product without an internal id whose sku or barcode equals `code`."""
        return self.db.execute(
            select(Product)
            .where(
                or_(Product.internal_id.is_(None), Product.internal_id == ""),
                or_(Product.sku == code, Product.barcode == code),
            )
            .order_by(Product.created_at)
            .limit(1)
        ).scalar_one_or_none()

    def by_ext_id(self, ext_id: str) -> Product | None:
        return self.db.execute(select(Product).where(Product.inventory_ext_id == ext_id).limit(1)).scalar_one_or_none()

    def by_sku(self, sku: str) -> Product | None:
        return self.db.execute(select(Product).where(Product.sku == sku)).scalar_one_or_none()

    def all(self) -> list[Product]:
        return list(self.db.execute(select(Product).order_by(Product.created_at, Product.id)).scalars())

    def add(self, product: Product) -> Product:
        self.db.add(product)
        self.db.flush()
        return product

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
