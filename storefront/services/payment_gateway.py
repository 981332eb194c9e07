# storefront/services/payment_gateway.py
"""
Bramka platnosci na SDK Stripe: sesje checkoutu, payment intenty
i weryfikacja podpisu webhooka.

Obiekty SDK zamieniamy na zwykle dicty, reszta serwisu nie zna typow Stripe.
"""
import json
from typing import Any, Dict, List

import stripe

from storefront.domain.errors import InvalidRequest
from storefront.utils.retry import gateway_retry
from storefront.utils.settings import (
    PAYMENT_API_KEY,
    PAYMENT_WEBHOOK_SECRET,
    PAYMENT_WEBHOOK_TOLERANCE_SECONDS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# statusy payment intent traktowane jako zaplacone
PAID_INTENT_STATUSES = {"succeeded", "requires_capture"}


def to_stripe_line_items(line_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Pozycje {name, image, currency, unit_amount, quantity} w ksztalcie price_data."""
    out = []
    for li in line_items:
        product_data: Dict[str, Any] = {"name": li["name"]}
        if li.get("image"):
            product_data["images"] = [li["image"]]
        out.append(
            {
                "price_data": {
                    "currency": li["currency"],
                    "unit_amount": li["unit_amount"],
                    "product_data": product_data,
                },
                "quantity": li["quantity"],
            }
        )
    return out


def _to_dict(obj: Any) -> Dict[str, Any]:
    # str(StripeObject) to JSON calego drzewa, razem z rozwinietymi polami
    return json.loads(str(obj))


class PaymentGateway:
    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        tolerance: int | None = None,
    ):
        self.api_key = api_key if api_key is not None else PAYMENT_API_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else PAYMENT_WEBHOOK_SECRET
        self.tolerance = tolerance if tolerance is not None else PAYMENT_WEBHOOK_TOLERANCE_SECONDS

    @gateway_retry()
    def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        metadata: Dict[str, Any],
        success_url: str,
        cancel_url: str,
        idempotency_key: str | None = None,
    ) -> Dict[str, Any]:
        meta = {key: str(value) for key, value in metadata.items()}
        logger.info(f"PaymentGateway create checkout session ({idempotency_key})")
        session = stripe.checkout.Session.create(
            api_key=self.api_key,
            idempotency_key=idempotency_key,
            mode="payment",
            payment_method_types=["card"],
            line_items=to_stripe_line_items(line_items),
            metadata=meta,
            # metadata zamowienia trafia tez do payment intent
            payment_intent_data={"metadata": meta},
            success_url=success_url,
            cancel_url=cancel_url,
        )
        return _to_dict(session)

    @gateway_retry()
    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        logger.info(f"PaymentGateway retrieve session {session_id}")
        session = stripe.checkout.Session.retrieve(
            session_id,
            api_key=self.api_key,
            expand=["payment_intent"],
        )
        return _to_dict(session)

    @gateway_retry()
    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        logger.info(f"PaymentGateway retrieve payment intent {payment_intent_id}")
        return _to_dict(stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key))

    def construct_event(self, payload: bytes, signature_header: str | None) -> Dict[str, Any]:
        """
        Weryfikuje podpis webhooka i zwraca zdarzenie.
        Bledny podpis -> InvalidRequest, stan zamowienia nie jest dotykany.
        """
        if not self.webhook_secret:
            raise InvalidRequest("Brak skonfigurowanego sekretu webhooka")
        if not signature_header:
            raise InvalidRequest("Brak podpisu webhooka")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError:
            raise InvalidRequest("Niepoprawne body webhooka")

        try:
            stripe.WebhookSignature.verify_header(body, signature_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Odrzucony webhook: {e}")
            raise InvalidRequest("Niepoprawny podpis webhooka")

        try:
            return json.loads(body)
        except ValueError:
            raise InvalidRequest("Niepoprawne body webhooka")
