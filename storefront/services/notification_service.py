# storefront/services/notification_service.py
from typing import Any, Dict

from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_CONFIRMATION = "order_confirmation"
ORDER_INVOICE = "order_invoice"
ADMIN_NEW_ORDER = "admin_new_order"
ORDER_CANCELLED = "order_cancelled"
ORDER_STATUS_CHANGED = "order_status_changed"

NOTIFICATION_KINDS = {
    ORDER_CONFIRMATION: "Order confirmed",
    ORDER_INVOICE: "Your invoice",
    ADMIN_NEW_ORDER: "New order received",
    ORDER_CANCELLED: "Order cancelled",
    ORDER_STATUS_CHANGED: "Order status updated",
}


class NotificationService:
    """
    Serwis do wysylania powiadomien.
    Wolany dopiero po commicie transakcji, zadanie idzie do kolejki Celery
    (fire-and-forget). Blad kolejki jest logowany i nie psuje requestu.
    """

    def enqueue(self, kind: str, payload: Dict[str, Any]) -> None:
        if kind not in NOTIFICATION_KINDS:
            raise ValueError(f"Nieznany rodzaj powiadomienia: {kind}")
        try:
            send_notification_task.delay(kind, payload)
        except Exception:
            logger.exception(f"Nie udalo sie zakolejkowac powiadomienia {kind}")


@celery_app.task(
    name="storefront.services.notification_service.send_notification_task",
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    max_retries=3,
)
def send_notification_task(kind: str, payload: Dict[str, Any]):
    """
    Celery task - tu bylby klient poczty (SMTP / SES).
    Teraz tylko loguje.
    """
    subject = NOTIFICATION_KINDS.get(kind, kind)
    recipients = payload.get("to") or payload.get("to_list") or []
    if isinstance(recipients, str):
        recipients = [recipients]

    order_ref = payload.get("order_no") or payload.get("order_id")
    logger.info(f"[NOTIFICATION] {subject} ({order_ref}) -> {', '.join(recipients) or 'brak odbiorcow'}")

    return {"kind": kind, "order": order_ref, "recipients": recipients, "status": "sent"}
