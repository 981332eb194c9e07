# storefront/services/checkout_service.py
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.domain.errors import InvalidRequest, NotFound
from storefront.domain.pricing import (
    ZERO,
    items_total,
    line_items_total,
    prorate_line_items,
    to_cents,
    to_money,
)
from storefront.repos.user_repo import UserRepo
from storefront.services.cart_service import CartService
from storefront.services.coupon_client import CouponClient
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import PaymentGateway
from storefront.utils.settings import CURRENCY, FRONTEND_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    Use Case: checkout -> zamowienie + sesja platnosci.

    Koszyk (albo pojedynczy wariant "kup teraz") -> kupon -> Order Builder
    -> pozycje z rozdzielonym rabatem -> sesja w bramce.
    Wszystko w jednej transakcji, blad bramki cofa zamowienie.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        coupon_verifier: CouponClient,
    ):
        self.db = db
        self.users = UserRepo(db)
        self.carts = CartService(db)
        self.orders = OrderService(db)
        self.gateway = gateway
        self.coupon_verifier = coupon_verifier

    def _collect_items(self, user_id: int, mode: str, variant_id: int | None, quantity: int):
        if mode == "cart":
            return self.carts.get_cart(user_id)["items"]

        if mode == "buy_now":
            if not variant_id:
                raise InvalidRequest("variant_id jest wymagany dla trybu buy_now")
            cart = self.carts.add_item(user_id, variant_id, quantity)
            return [i for i in cart["items"] if i["variant_id"] == variant_id]

        raise InvalidRequest("Niepoprawny tryb checkoutu")

    def create_checkout_session(
        self,
        user_id: int,
        shipping_address_id: int,
        mode: str = "cart",
        variant_id: int | None = None,
        quantity: int = 1,
        coupon_id: int | None = None,
        coupon_code: str | None = None,
        channel: str = "WEB",
        shipping_cost: Decimal = ZERO,
    ) -> Dict[str, Any]:
        address = self.users.get_address(shipping_address_id, user_id)
        if not address:
            raise NotFound("Adres wysylki nie istnieje")
        shipping_address = address.snapshot()

        items = self._collect_items(user_id, mode, variant_id, quantity)
        if not items:
            raise InvalidRequest("Brak pozycji do zamowienia")

        subtotal = items_total(items)
        shipping_cost = to_money(shipping_cost)

        discount = ZERO
        free_shipping = False
        if coupon_code or coupon_id:
            verification = self.coupon_verifier.verify(
                code=coupon_code,
                user_id=user_id,
                channel=channel,
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                items=items,
                coupon_id=coupon_id,
            )
            if not verification.success:
                # kupon odrzucony = twardy stop checkoutu
                raise InvalidRequest(verification.message or "Kupon jest nieprawidlowy")

            discount = min(to_money(verification.discount), subtotal)
            free_shipping = verification.free_shipping
            if verification.coupon:
                coupon_code = verification.coupon.get("code") or coupon_code
                coupon_id = verification.coupon.get("id") or coupon_id

        effective_shipping = ZERO if free_shipping else shipping_cost
        amount_total = to_money(max(ZERO, subtotal - discount) + effective_shipping)

        order = self.orders.create_order(
            user_id=user_id,
            items=items,
            shipping_address=shipping_address,
            billing_address=shipping_address,
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            discount_amount=discount,
            shipping_cost=effective_shipping,
        )

        line_items = prorate_line_items(items, discount, effective_shipping, CURRENCY)
        if line_items_total(line_items) != to_cents(amount_total):
            # nie powinno sie zdarzyc, rozdzial domyka sume co do grosza
            raise RuntimeError(f"Suma pozycji nie zgadza sie z kwota zamowienia {order.order_no}")

        session = self.gateway.create_checkout_session(
            line_items=line_items,
            metadata={"order_id": order.id, "user_id": user_id},
            success_url=f"{FRONTEND_URL}/success-payment?order_id={order.id}",
            cancel_url=f"{FRONTEND_URL}/checkout-cancelled",
            idempotency_key=f"checkout-{order.order_no}",
        )
        if not session or not session.get("id"):
            raise RuntimeError("Bramka nie zwrocila sesji platnosci")

        order.gateway_session_id = session["id"]
        self.db.flush()

        logger.info(f"Sesja platnosci {session['id']} dla zamowienia {order.order_no}, kwota {amount_total}")

        return {
            "order_id": order.id,
            "order_no": order.order_no,
            "session_id": session["id"],
            "url": session.get("url"),
            "amount_total": amount_total,
        }
