# storefront/repos/product_repo.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from storefront.data.models.product import (
    CategoryModel,
    ProductModel,
    ProductVariantModel,
    SaleModel,
)
from storefront.data.models.inventory_transaction import InventoryTransactionModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_variant(self, variant_id: int, for_update: bool = False) -> ProductVariantModel | None:
        """Wariant, ktory mozna kupic (wariant i produkt nieusuniete)."""
        stmt = (
            select(ProductVariantModel)
            .join(ProductModel, ProductModel.id == ProductVariantModel.product_id)
            .where(
                ProductVariantModel.id == variant_id,
                ProductVariantModel.deleted_at.is_(None),
                ProductModel.deleted_at.is_(None),
            )
        )
        if for_update:
            stmt = stmt.with_for_update(of=ProductVariantModel)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_variant_stock(self, variant_id: int) -> ProductVariantModel | None:
        #SELECT ... FOR UPDATE na wierszu ze stanem
        return self.db.execute(
            select(ProductVariantModel)
            .where(ProductVariantModel.id == variant_id)
            .with_for_update()
        ).scalar_one_or_none()

    def _active_sales(self, now: datetime):
        return (
            SaleModel.deleted_at.is_(None),
            SaleModel.active.is_(True),
            or_(SaleModel.start_at.is_(None), SaleModel.start_at <= now),
            or_(SaleModel.end_at.is_(None), SaleModel.end_at >= now),
        )

    def max_discount_percent(self, product_id: int, now: datetime) -> Decimal:
        value = self.db.execute(
            select(func.max(SaleModel.discount_percent)).where(
                SaleModel.product_id == product_id,
                *self._active_sales(now),
            )
        ).scalar()
        return Decimal(str(value)) if value is not None else Decimal("0")

    def max_discount_percents(self, product_ids: Iterable[int], now: datetime) -> Dict[int, Decimal]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(SaleModel.product_id, func.max(SaleModel.discount_percent))
            .where(SaleModel.product_id.in_(ids), *self._active_sales(now))
            .group_by(SaleModel.product_id)
        ).all()
        return {pid: Decimal(str(pct)) for pid, pct in rows if pct is not None}

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_category(self, category_id: int) -> CategoryModel | None:
        return self.db.get(CategoryModel, category_id)

    def add_inventory_transaction(
        self, variant_id: int, change: int, reason: str, reference_id: int
    ) -> InventoryTransactionModel:
        entry = InventoryTransactionModel(
            variant_id=variant_id,
            change=change,
            reason=reason,
            reference_id=reference_id,
        )
        self.db.add(entry)
        return entry

    def has_inventory_transaction(self, reference_id: int, reason: str) -> bool:
        return self.db.execute(
            select(InventoryTransactionModel.id)
            .where(
                InventoryTransactionModel.reference_id == reference_id,
                InventoryTransactionModel.reason == reason,
            )
            .limit(1)
        ).first() is not None
