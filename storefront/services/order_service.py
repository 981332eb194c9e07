# storefront/services/order_service.py
import copy
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.inventory_transaction import (
    REASON_ORDER_CANCELLED,
    REASON_ORDER_PAID,
)
from storefront.domain.errors import (
    AlreadyCancelled,
    Conflict,
    InvalidRequest,
    InvalidTransition,
    NotFound,
)
from storefront.domain.pricing import items_total, line_quantity, to_money, unit_price
from storefront.repos.order_repo import OrderRepo
from storefront.repos.product_repo import ProductRepo
from storefront.utils.settings import ORDER_NO_PREFIX
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_NO_ATTEMPTS = 5

# dozwolone przejscia order_status przez admina (cancelled idzie przez cancel_order)
ORDER_STATUS_TRANSITIONS = {
    "created": {"pending", "processing"},
    "pending": {"processing"},
    "processing": {"shipped"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

# realizacja (i wysylka) tylko dla oplaconych zamowien
PAID_ONLY_ORDER_STATUSES = {"processing", "shipped", "delivered"}

# finalizacja przesuwa do processing tylko z tych statusow
PRE_FULFILMENT_ORDER_STATUSES = {"created", "pending"}

REFUND_STATUSES = ("refund_initiated", "refund_completed")


@dataclass
class FinalizeResult:
    order_id: int
    already_processed: bool
    user_id: Optional[int] = None
    order_no: Optional[str] = None


@dataclass
class CancelResult:
    order_id: int
    user_id: int
    order_no: str
    restored_items: int
    restored: List[Dict[str, int]] = field(default_factory=list)


def slugify(text: str) -> str:
    return re.sub(r"[\s\W-]+", "-", str(text).strip().lower())


class OrderService:
    """
    Domena zamowien.
    - Order Builder: snapshot zamowienia z pozycji koszyka
    - finalizacja po platnosci (dokladnie raz)
    - anulowanie, zwroty, statusy realizacji

    Metody zapisujace nie commituja, granica transakcji jest u wolajacego.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)
        self.products = ProductRepo(db)

    # =====================================================
    # ORDER BUILDER
    # =====================================================
    def generate_order_no(self, now: datetime | None = None) -> str:
        # ORD-YYYYMMDD-XXXXXX
        now = now or datetime.now(timezone.utc)
        suffix = uuid.uuid4().hex[:6].upper()
        return f"{ORDER_NO_PREFIX}-{now:%Y%m%d}-{suffix}"

    def _unique_order_no(self) -> str:
        for _ in range(ORDER_NO_ATTEMPTS):
            order_no = self.generate_order_no()
            if not self.repo.order_no_exists(order_no):
                return order_no
            logger.warning(f"Kolizja numeru zamowienia {order_no}, losuje ponownie")
        raise Conflict("Nie udalo sie wygenerowac unikalnego numeru zamowienia")

    def generate_product_link(self, product_id: int | None) -> str | None:
        if not product_id:
            return None
        product = self.products.get_product(product_id)
        if not product:
            return None

        category = "all"
        if product.default_category_id:
            cat = self.products.get_category(product.default_category_id)
            if cat:
                category = re.sub(r"\s+", "-", cat.name.lower())

        return f"/shop/product/{slugify(product.name)}/{product.id}?cat={category}"

    def create_order(
        self,
        user_id: int,
        items: Sequence[Dict[str, Any]],
        shipping_address: Dict[str, Any] | None,
        billing_address: Dict[str, Any] | None = None,
        coupon_id: int | None = None,
        coupon_code: str | None = None,
        discount_amount: Decimal = Decimal("0.00"),
        shipping_cost: Decimal = Decimal("0.00"),
    ) -> OrderModel:
        """
        Use Case: utworzenie zamowienia z pozycji (koszyk albo "kup teraz").

        1. Walidacja: min. jedna pozycja i adres wysylki
        2. total_amount = suma(cena * ilosc), zaokraglona raz na koncu
        3. Unikalny numer zamowienia
        4. Zamowienie (pending/created) ze zrzutem adresow
        5. Pozycje z wlasnym snapshotem ceny i linkiem do produktu
        Commit robi wolajacy.
        """
        if not items:
            raise InvalidRequest("Zamowienie musi miec co najmniej jedna pozycje")
        if not shipping_address:
            raise InvalidRequest("Adres wysylki jest wymagany")

        total_amount = items_total(items)
        shipping_snapshot = copy.deepcopy(dict(shipping_address))
        billing_snapshot = copy.deepcopy(dict(billing_address or shipping_address))

        order = self.repo.create_order(
            OrderModel(
                order_no=self._unique_order_no(),
                user_id=user_id,
                total_amount=total_amount,
                discount_amount=to_money(discount_amount),
                shipping_cost=to_money(shipping_cost),
                payment_status="pending",
                order_status="created",
                shipping_address=shipping_snapshot,
                billing_address=billing_snapshot,
                coupon_id=coupon_id,
                coupon_code=coupon_code,
            )
        )

        for it in items:
            product = it.get("product") or {}
            self.repo.add_order_item(
                OrderItemModel(
                    order_id=order.id,
                    variant_id=it.get("variant_id"),
                    quantity=line_quantity(it),
                    price=unit_price(it),
                    product_link=self.generate_product_link(it.get("product_id") or product.get("id")),
                )
            )
        self.db.flush()

        logger.info(f"Zamowienie {order.order_no} utworzone, total {total_amount}, pozycji {len(items)}")
        return order

    # =====================================================
    # PAYMENT RECONCILIATION
    # =====================================================
    def finalize_paid_order(self, order_id: int, payment_reference: str | None = None) -> FinalizeResult:
        """
        Jedyne przejscie "platnosc potwierdzona" -> "stan zdjety".
        Webhooki przychodza co najmniej raz, wiec przy payment_status == paid
        nic sie nie dzieje.
        """
        order = self.repo.lock_order(order_id, include_deleted=True)
        if not order:
            raise NotFound("Zamowienie nie istnieje")

        if order.payment_status == "paid":
            logger.info(f"Zamowienie {order.order_no} juz oplacone, pomijam finalizacje")
            return FinalizeResult(order.id, True, order.user_id, order.order_no)

        if order.order_status == "cancelled":
            raise InvalidTransition("Anulowanego zamowienia nie mozna oplacic")

        for it in self.repo.get_order_items(order.id):
            if not it.variant_id:
                continue
            variant = self.products.lock_variant_stock(it.variant_id)
            if not variant:
                logger.warning(f"Wariant {it.variant_id} z zamowienia {order.order_no} nie istnieje")
                continue

            if variant.stock is not None:
                # przed sprzedaza ponad stan chroni koszyk, tu tylko nie schodzimy ponizej 0
                new_stock = variant.stock - it.quantity
                if new_stock < 0:
                    logger.warning(
                        f"Stan wariantu {variant.id} ponizej zera ({new_stock}) przy zamowieniu {order.order_no}"
                    )
                variant.stock = max(0, new_stock)

            self.products.add_inventory_transaction(
                variant_id=it.variant_id,
                change=-abs(it.quantity),
                reason=REASON_ORDER_PAID,
                reference_id=order.id,
            )

        order.payment_status = "paid"
        if order.order_status in PRE_FULFILMENT_ORDER_STATUSES:
            order.order_status = "processing"
        order.deleted_at = None
        if payment_reference:
            order.payment_reference = payment_reference
        self.db.flush()

        logger.info(f"Zamowienie {order.order_no} oplacone ({payment_reference})")
        return FinalizeResult(order.id, False, order.user_id, order.order_no)

    def mark_payment_failed(self, order_id: int) -> bool:
        order = self.repo.lock_order(order_id)
        if not order:
            raise NotFound("Zamowienie nie istnieje")
        if order.payment_status != "pending":
            return False

        order.payment_status = "failed"
        self.db.flush()
        logger.info(f"Platnosc za zamowienie {order.order_no} nieudana")
        return True

    def cancel_order(self, order_id: int, reason: str | None = None) -> CancelResult:
        """
        Odwrotnosc finalizacji: zwrot stanu i wpis w ksiedze dla kazdej pozycji.
        Zamowienie bez wpisu order_paid w ksiedze nic nie zwraca.
        """
        order = self.repo.lock_order(order_id)
        if not order:
            raise NotFound("Zamowienie nie istnieje")

        if order.order_status == "cancelled":
            raise AlreadyCancelled("Zamowienie jest juz anulowane")

        # stan zdjety = jest wpis order_paid w ksiedze, niezaleznie od statusow
        consumed = self.products.has_inventory_transaction(order.id, REASON_ORDER_PAID)

        restored = []
        if consumed:
            for it in self.repo.get_order_items(order.id):
                if not it.variant_id:
                    continue
                variant = self.products.lock_variant_stock(it.variant_id)
                if not variant:
                    continue

                if variant.stock is not None:
                    variant.stock = variant.stock + it.quantity

                self.products.add_inventory_transaction(
                    variant_id=it.variant_id,
                    change=abs(it.quantity),
                    reason=REASON_ORDER_CANCELLED,
                    reference_id=order.id,
                )
                restored.append({"variant_id": it.variant_id, "quantity": it.quantity})

        order.order_status = "cancelled"
        self._audit(order.id, "cancel_order", {"reason": reason, "restored": restored})
        self.db.flush()

        logger.info(f"Zamowienie {order.order_no} anulowane, zwrocono {len(restored)} pozycji")
        return CancelResult(order.id, order.user_id, order.order_no, len(restored), restored)

    def update_payment_status_after_cancel(self, order_id: int, payment_status: str) -> OrderModel:
        if payment_status not in REFUND_STATUSES:
            raise InvalidRequest(
                f"Niepoprawny payment_status, dozwolone: {', '.join(REFUND_STATUSES)}"
            )

        order = self.repo.lock_order(order_id)
        if not order:
            raise NotFound("Zamowienie nie istnieje")

        if order.order_status != "cancelled":
            raise InvalidTransition(
                f"Zamowienie musi byc anulowane, aktualny status: {order.order_status}"
            )

        if payment_status == "refund_completed" and order.payment_status not in REFUND_STATUSES:
            raise InvalidTransition("Zwrot musi byc najpierw rozpoczety (refund_initiated)")
        if payment_status == "refund_initiated" and order.payment_status == "refund_completed":
            raise InvalidTransition("Zwrot jest juz zakonczony")

        order.payment_status = payment_status
        self._audit(order.id, "update_payment_status", {"payment_status": payment_status})
        self.db.flush()
        return order

    def update_order_status(self, order_id: int, order_status: str, note: str | None = None) -> OrderModel:
        """
        Admin przesuwa zamowienie po maszynie stanow.
        processing/shipped/delivered tylko po platnosci.
        "cancelled" deleguje do cancel_order (zwrot stanu).
        """
        if order_status not in ORDER_STATUS_TRANSITIONS:
            raise InvalidRequest(f"Nieznany order_status: {order_status}")

        if order_status == "cancelled":
            self.cancel_order(order_id, reason=note)
            return self.repo.get_order(order_id)

        order = self.repo.lock_order(order_id)
        if not order:
            raise NotFound("Zamowienie nie istnieje")

        allowed = ORDER_STATUS_TRANSITIONS[order.order_status]
        if order_status not in allowed:
            raise InvalidTransition(
                f"Niedozwolone przejscie {order.order_status} -> {order_status}"
            )
        if order_status in PAID_ONLY_ORDER_STATUSES and order.payment_status != "paid":
            raise InvalidTransition(
                f"Zamowienie nieoplacone ({order.payment_status}), nie mozna ustawic {order_status}"
            )

        previous = order.order_status
        order.order_status = order_status
        self.db.flush()
        self._audit(order.id, "admin_update_status", {"from": previous, "to": order_status, "note": note})
        return order

    def _audit(self, order_id: int, action: str, payload: dict) -> None:
        # audit jest best-effort, savepoint zeby blad nie zepsul transakcji
        try:
            with self.db.begin_nested():
                self.repo.add_audit_log("orders", order_id, action, payload)
        except Exception:
            logger.warning(f"Nie udalo sie zapisac audit logu dla zamowienia {order_id}", exc_info=True)

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, order_id: int, user_id: int) -> OrderModel:
        order = self.repo.get_user_order(order_id, user_id)
        if not order:
            raise NotFound("Zamowienie nie istnieje")
        return order

    def list_orders(
        self,
        user_id: int,
        payment_status: str | None = "paid",
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        limit = min(100, max(1, limit))
        offset = max(0, offset)
        total, orders = self.repo.list_user_orders(
            user_id,
            payment_status=payment_status,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
            offset=offset,
        )
        return {"total": total, "limit": limit, "offset": offset, "orders": orders}
