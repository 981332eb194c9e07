# storefront/repos/cart_repo.py
from typing import List, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.product import ProductModel, ProductVariantModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_active_cart_by_user(self, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id, CartModel.deleted_at.is_(None))
            .order_by(CartModel.id)
            .limit(1)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        """
        Insert w savepoincie. Rownolegle utworzony koszyk (unikalny indeks
        na aktywnym koszyku) wygrywa i jest zwracany zamiast nowego.
        """
        try:
            with self.db.begin_nested():
                self.db.add(cart)
                self.db.flush()
        except IntegrityError:
            existing = self.get_active_cart_by_user(cart.user_id)
            if existing is None:
                raise
            return existing
        return cart

    def get_cart_item(self, cart_id: int, variant_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel)
            .where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.variant_id == variant_id,
                CartItemModel.deleted_at.is_(None),
            )
            .limit(1)
        ).scalar_one_or_none()

    def get_cart_item_by_id(self, cart_id: int, item_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.id == item_id,
                CartItemModel.cart_id == cart_id,
                CartItemModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()

    def get_cart_items(self, cart_id: int) -> List[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel).where(
                    CartItemModel.cart_id == cart_id,
                    CartItemModel.deleted_at.is_(None),
                )
            ).scalars()
        )

    def get_cart_lines(
        self, cart_id: int
    ) -> List[Tuple[CartItemModel, ProductVariantModel, ProductModel]]:
        """Pozycje koszyka razem z wariantem i produktem (bez usunietych)."""
        rows = self.db.execute(
            select(CartItemModel, ProductVariantModel, ProductModel)
            .join(ProductVariantModel, ProductVariantModel.id == CartItemModel.variant_id)
            .join(ProductModel, ProductModel.id == ProductVariantModel.product_id)
            .where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.deleted_at.is_(None),
                ProductVariantModel.deleted_at.is_(None),
                ProductModel.deleted_at.is_(None),
            )
            .order_by(CartItemModel.created_at, CartItemModel.id)
        ).all()
        return [tuple(r) for r in rows]

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, cart_id: int, item_id: int) -> int:
        res = self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.id == item_id,
                CartItemModel.cart_id == cart_id,
            )
        )
        return res.rowcount

    def clear_cart_items(self, cart_id: int) -> int:
        res = self.db.execute(
            delete(CartItemModel).where(CartItemModel.cart_id == cart_id)
        )
        return res.rowcount
