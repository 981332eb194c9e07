# storefront/services/cart_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.product import ProductVariantModel
from storefront.domain.errors import InsufficientStock, InvalidRequest, NotFound
from storefront.domain.pricing import apply_discount, to_money
from storefront.repos.cart_repo import CartRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def base_price(variant: ProductVariantModel) -> Decimal:
    # rabat liczymy od ceny sprzedazy wariantu, price to fallback
    if variant.sale_price is not None:
        return Decimal(str(variant.sale_price))
    return Decimal(str(variant.price))


class CartService:
    """
    Koszyk uzytkownika: pozycje i cena sprzedazy liczona na zywo.

    commands (add, update, remove, clear, sync) modyfikuja stan,
    query (get) tylko odczyt.
    Wszystkie komendy dzialaja w transakcji zarzadzanej przez wolajacego,
    serwis robi tylko flush.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    # =====================================================
    # QUERY
    # =====================================================
    def get_cart(self, user_id: int, now: datetime | None = None) -> Dict[str, Any]:
        """
        Koszyk z cenami na "teraz", rabaty sa ograniczone czasowo
        wiec nic tu nie jest cache'owane.
        """
        now = now or datetime.now(timezone.utc)
        cart = self.get_or_create_cart(user_id)

        lines = self.repo.get_cart_lines(cart.id)
        discounts = self.products.max_discount_percents(
            (product.id for _, _, product in lines), now
        )

        items = []
        subtotal = Decimal(0)
        discount_total = Decimal(0)
        total_items = 0

        for item, variant, product in lines:
            base = base_price(variant)
            pct = discounts.get(product.id, Decimal("0"))
            sale_price = apply_discount(base, pct)
            qty = int(item.quantity)

            subtotal += base * qty
            discount_total += (base - sale_price) * qty
            total_items += qty

            items.append(
                {
                    "cart_item_id": item.id,
                    "variant_id": variant.id,
                    "product_id": product.id,
                    "variant": {"id": variant.id, "size": variant.size, "color": variant.color},
                    "sku": variant.sku,
                    "product": {"id": product.id, "name": product.name, "image": product.product_img},
                    "quantity": qty,
                    "price": to_money(base),
                    "variant_price": to_money(base),
                    "sale_price": sale_price,
                    "discount_percent": pct,
                    "line_total": to_money(sale_price * qty),
                    "stock": variant.stock,
                    "brand_name": product.brand_name,
                }
            )

        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "items": items,
            "subtotal": to_money(subtotal),
            "discount_total": to_money(discount_total),
            "total_items": total_items,
            "total_payable": to_money(subtotal - discount_total),
        }

    # =====================================================
    # COMMANDS
    # =====================================================
    def get_or_create_cart(self, user_id: int) -> CartModel:
        existing = self.repo.get_active_cart_by_user(user_id)
        if existing:
            return existing

        created = self.repo.create_cart(CartModel(user_id=user_id))
        logger.info(f"Utworzono nowy koszyk {created.id} dla uzytkownika {user_id}")
        return created

    def add_item(self, user_id: int, variant_id: int, quantity: int) -> Dict[str, Any]:
        """
        Dodanie wariantu do koszyka.
        Jesli wariant juz jest w koszyku ilosc sie sumuje, suma nie moze
        przekroczyc stanu.
        """
        if quantity is None or int(quantity) <= 0:
            raise InvalidRequest("Ilosc musi byc wieksza niz 0")
        quantity = int(quantity)

        # lock na wariancie: dwa rownolegle dodania tego samego wariantu
        # ida jeden po drugim i drugi widzi pozycje pierwszego
        variant = self.products.get_variant(variant_id, for_update=True)
        if not variant:
            raise NotFound("Wariant nie istnieje")

        if variant.stock is not None and variant.stock < quantity:
            raise InsufficientStock("Niewystarczajacy stan magazynowy")

        cart = self.get_or_create_cart(user_id)
        self._upsert_line(cart, variant, quantity)

        return self.get_cart(user_id)

    def update_item(self, user_id: int, item_id: int, quantity: int) -> Dict[str, Any]:
        if quantity is None or int(quantity) < 0:
            raise InvalidRequest("Ilosc musi byc liczba calkowita >= 0")
        quantity = int(quantity)

        cart = self.get_or_create_cart(user_id)
        item = self.repo.get_cart_item_by_id(cart.id, item_id)
        if not item:
            raise NotFound("Pozycja koszyka nie istnieje")

        if quantity == 0:
            logger.info(f"Usuwanie pozycji {item_id} z koszyka {cart.id}")
            self.repo.delete_cart_item(cart.id, item_id)
            return self.get_cart(user_id)

        variant = self.products.get_variant(item.variant_id, for_update=True)
        if not variant:
            raise NotFound("Wariant nie istnieje")

        if variant.stock is not None and quantity > variant.stock:
            raise InsufficientStock("Niewystarczajacy stan magazynowy")

        item.quantity = quantity
        item.price = self._snapshot_price(variant)
        self.repo.add_cart_item(item)

        return self.get_cart(user_id)

    def remove_item(self, user_id: int, item_id: int) -> Dict[str, Any]:
        cart = self.get_or_create_cart(user_id)
        self.repo.delete_cart_item(cart.id, item_id)
        return self.get_cart(user_id)

    def clear_cart(self, user_id: int) -> None:
        cart = self.get_or_create_cart(user_id)
        removed = self.repo.clear_cart_items(cart.id)
        logger.info(f"Wyczyszczono koszyk {cart.id} ({removed} pozycji)")

    def sync_guest_cart(self, user_id: int, items: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Scalenie koszyka goscia z koszykiem zalogowanego uzytkownika.
        Niepoprawne pozycje i te ponad stan sa pomijane, reszta wchodzi
        (scalenie czesciowe jest poprawnym wynikiem).
        """
        cart = self.get_or_create_cart(user_id)
        merged = 0

        for it in items:
            variant_id = it.get("variant_id")
            quantity = int(it.get("quantity") or 0)
            if not variant_id or quantity <= 0:
                continue

            variant = self.products.get_variant(variant_id, for_update=True)
            if not variant:
                continue
            if variant.stock is not None and variant.stock < quantity:
                continue

            try:
                self._upsert_line(cart, variant, quantity)
            except InsufficientStock:
                continue
            merged += 1

        logger.info(f"Zsynchronizowano koszyk goscia dla uzytkownika {user_id}: {merged} pozycji")
        return self.get_cart(user_id)

    # =====================================================
    # HELPERS
    # =====================================================
    def _snapshot_price(self, variant: ProductVariantModel) -> Decimal:
        pct = self.products.max_discount_percent(variant.product_id, datetime.now(timezone.utc))
        return apply_discount(base_price(variant), pct)

    def _upsert_line(self, cart: CartModel, variant: ProductVariantModel, quantity: int) -> CartItemModel:
        price = self._snapshot_price(variant)
        existing_item = self.repo.get_cart_item(cart.id, variant.id)

        if existing_item:
            new_qty = existing_item.quantity + quantity
            if variant.stock is not None and new_qty > variant.stock:
                raise InsufficientStock("Niewystarczajacy stan dla lacznej ilosci w koszyku")

            logger.info(
                f"Wariant {variant.id} juz jest w koszyku, zwiekszam ilosc "
                f"z {existing_item.quantity} do {new_qty}"
            )
            existing_item.quantity = new_qty
            existing_item.price = price
            return self.repo.add_cart_item(existing_item)

        logger.info(f"Dodaje wariant {variant.id} do koszyka {cart.id}")
        return self.repo.add_cart_item(
            CartItemModel(
                cart_id=cart.id,
                variant_id=variant.id,
                quantity=quantity,
                price=price,
            )
        )


