# storefront/services/payment_service.py
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.domain.errors import InvalidRequest, InvalidTransition, NotFound, PaymentNotConfirmed
from storefront.repos.order_repo import OrderRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.cart_service import CartService
from storefront.services.lock_service import LockService
from storefront.services.notification_service import (
    ADMIN_NEW_ORDER,
    ORDER_CONFIRMATION,
    ORDER_INVOICE,
    NotificationService,
)
from storefront.services.order_service import FinalizeResult, OrderService
from storefront.services.payment_gateway import PAID_INTENT_STATUSES, PaymentGateway
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SESSION_COMPLETED = "checkout.session.completed"
SESSION_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
SESSION_PAID_EVENTS = {SESSION_COMPLETED, SESSION_ASYNC_SUCCEEDED}
# completed przychodzi tez dla metod asynchronicznych, zanim pieniadze dojda
PAID_SESSION_STATUSES = {"paid", "no_payment_required"}
SESSION_FAILED_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class PaymentService:
    """
    Rozliczenie platnosci: weryfikacja po stronie klienta i webhook bramki.

    Finalizacja idzie w osobnej transakcji, efekty uboczne (czyszczenie
    koszyka, maile, powiadomienie admina) dopiero po commicie i tylko
    gdy zamowienie zostalo oplacone w tym wywolaniu.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        notifier: NotificationService,
        lock_service: LockService | None = None,
    ):
        self.db = db
        self.orders = OrderService(db)
        self.order_repo = OrderRepo(db)
        self.users = UserRepo(db)
        self.gateway = gateway
        self.notifier = notifier
        self.lock_service = lock_service

    # =====================================================
    # FINALIZE
    # =====================================================
    def finalize(self, order_id: int, payment_reference: str | None = None) -> FinalizeResult:
        with transaction(self.db):
            result = self.orders.finalize_paid_order(order_id, payment_reference)

        if not result.already_processed:
            self._after_paid(result.order_id, payment_reference)
        return result

    def _after_paid(self, order_id: int, payment_reference: str | None) -> None:
        """Efekty uboczne po commicie, bledy tylko logujemy."""
        order = self.order_repo.get_order(order_id)
        if not order:
            return

        try:
            with transaction(self.db):
                CartService(self.db).clear_cart(order.user_id)
        except Exception:
            logger.warning(f"Nie udalo sie wyczyscic koszyka po oplaceniu {order.order_no}", exc_info=True)

        try:
            user = self.users.get_user(order.user_id)
            items = [
                {
                    "variant_id": it.variant_id,
                    "quantity": it.quantity,
                    "price": str(it.price),
                    "product_link": it.product_link,
                }
                for it in self.order_repo.get_order_items(order.id)
            ]
            payload = {
                "order_id": order.id,
                "order_no": order.order_no,
                "payment_reference": payment_reference,
                "total_amount": str(order.total_amount),
                "items": items,
                "to": user.email if user else None,
                "customer_name": user.full_name if user else None,
            }
            self.notifier.enqueue(ORDER_CONFIRMATION, payload)
            self.notifier.enqueue(ORDER_INVOICE, payload)
            self.notifier.enqueue(ADMIN_NEW_ORDER, {**payload, "to": None, "customer_email": payload["to"]})
        except Exception:
            logger.warning(f"Nie udalo sie zakolejkowac powiadomien dla {order.order_no}", exc_info=True)

    # =====================================================
    # CLIENT VERIFICATION
    # =====================================================
    def verify_payment(
        self,
        user_id: int,
        order_id: int,
        session_id: str | None = None,
        payment_intent: str | None = None,
    ) -> Dict[str, Any]:
        """
        Klient twierdzi, ze zaplacil; status bierzemy z bramki, nie od klienta.
        """
        if not order_id and not session_id and not payment_intent:
            raise InvalidRequest("Podaj order_id, session_id albo payment_intent")

        order = self.order_repo.get_order(order_id)
        if not order or order.user_id != user_id:
            raise NotFound("Zamowienie nie istnieje")

        session_id = session_id or order.gateway_session_id
        if not session_id and not payment_intent:
            raise InvalidRequest("Brak sesji platnosci dla zamowienia")

        intent: Dict[str, Any] | None = None
        status = None
        if session_id:
            session = self.gateway.retrieve_checkout_session(session_id)
            pi = session.get("payment_intent")
            if isinstance(pi, dict):
                intent = pi
            elif pi:
                intent = self.gateway.retrieve_payment_intent(pi)
            status = intent.get("status") if intent else None
            if status is None and session.get("payment_status") == "paid":
                status = "succeeded"
        else:
            intent = self.gateway.retrieve_payment_intent(payment_intent)
            status = intent.get("status")

        payment_reference = (intent or {}).get("id") or payment_intent
        self._record_payment(order.id, session_id, intent, status)

        if status not in PAID_INTENT_STATUSES:
            raise PaymentNotConfirmed(f"Platnosc niezakonczona, status bramki: {status}")

        result = self.finalize(order.id, payment_reference)
        return {
            "order_id": order.id,
            "order_no": order.order_no,
            "payment_reference": payment_reference,
            "status": status,
            "already_processed": result.already_processed,
        }

    def _record_payment(self, order_id: int, session_id: str | None, intent: Dict[str, Any] | None, status: str | None) -> None:
        # zapis platnosci jest pomocniczy, nie blokuje finalizacji
        intent = intent or {}
        try:
            with transaction(self.db):
                self.order_repo.upsert_payment(
                    order_id,
                    amount=Decimal(intent.get("amount") or 0) / 100,
                    method="stripe",
                    status=status or "unknown",
                    currency=intent.get("currency"),
                    gateway_session_id=session_id,
                    gateway_payment_intent_id=intent.get("id"),
                    provider_response=intent or None,
                )
        except Exception:
            logger.warning(f"Nie udalo sie zapisac platnosci dla zamowienia {order_id}", exc_info=True)

    # =====================================================
    # WEBHOOK
    # =====================================================
    def handle_webhook(self, payload: bytes, signature: str | None) -> Dict[str, Any]:
        # najpierw podpis, dopiero potem cokolwiek w bazie
        event = self.gateway.construct_event(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type not in SESSION_PAID_EVENTS and event_type not in SESSION_FAILED_EVENTS:
            return {"received": True, "handled": False}

        token = None
        if self.lock_service and event_id:
            token = self.lock_service.claim_event(event_id)
            if token is None:
                logger.info(f"Zdarzenie {event_id} juz obsluzone, pomijam")
                return {"received": True, "handled": False, "duplicate": True}

        try:
            handled = self._dispatch_event(event_type, obj)
        except Exception:
            if token:
                self.lock_service.release_event(event_id, token)
            raise

        return {"received": True, "handled": handled}

    def _dispatch_event(self, event_type: str, obj: Dict[str, Any]) -> bool:
        order_id = (obj.get("metadata") or {}).get("order_id")
        if not order_id:
            logger.warning(f"Zdarzenie {event_type} bez order_id w metadata")
            return False
        order_id = int(order_id)

        session_status = obj.get("payment_status")
        if event_type in SESSION_PAID_EVENTS and session_status not in PAID_SESSION_STATUSES:
            logger.info(f"Sesja zamowienia {order_id} bez platnosci ({session_status}), nie finalizuje")
            return False

        try:
            if event_type in SESSION_PAID_EVENTS:
                pi = obj.get("payment_intent")
                payment_reference = pi.get("id") if isinstance(pi, dict) else pi
                self.finalize(order_id, payment_reference)
            else:
                with transaction(self.db):
                    self.orders.mark_payment_failed(order_id)
        except (NotFound, InvalidTransition) as e:
            # retry bramki nic tu nie zmieni, potwierdzamy odbior
            logger.error(f"Zdarzenie {event_type} dla zamowienia {order_id} odrzucone: {e}")
            return False
        return True
