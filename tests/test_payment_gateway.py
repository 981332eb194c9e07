"""
PaymentGateway na SDK Stripe: parametry wywolan, konwersja obiektow
i prawdziwa weryfikacja podpisu webhooka (stripe.WebhookSignature).
"""

import hashlib
import hmac
import json
import time

import pytest
import stripe

from storefront.domain.errors import InvalidRequest
from storefront.services.payment_gateway import PaymentGateway, to_stripe_line_items

from conftest import WEBHOOK_SECRET, signed_event


class SdkObject(dict):
    """Odpowiedz SDK: str() daje JSON, jak StripeObject."""

    def __str__(self):
        return json.dumps(self)


@pytest.fixture
def real_gateway():
    return PaymentGateway(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET, tolerance=300)


LINE_ITEMS = [
    {"name": "Running Shoe", "image": "shoe.png", "currency": "usd", "unit_amount": 4999, "quantity": 2},
    {"name": "Shipping", "image": None, "currency": "usd", "unit_amount": 450, "quantity": 1},
]


def test_line_items_in_price_data_shape():
    assert to_stripe_line_items(LINE_ITEMS) == [
        {
            "price_data": {
                "currency": "usd",
                "unit_amount": 4999,
                "product_data": {"name": "Running Shoe", "images": ["shoe.png"]},
            },
            "quantity": 2,
        },
        {
            "price_data": {"currency": "usd", "unit_amount": 450, "product_data": {"name": "Shipping"}},
            "quantity": 1,
        },
    ]


def test_create_checkout_session_calls_sdk(real_gateway, monkeypatch):
    calls = []

    def create(**params):
        calls.append(params)
        return SdkObject(id="cs_1", url="https://checkout.stripe.com/cs_1", metadata=params["metadata"])

    monkeypatch.setattr(stripe.checkout.Session, "create", create)

    session = real_gateway.create_checkout_session(
        line_items=LINE_ITEMS,
        metadata={"order_id": 7, "user_id": 1},
        success_url="http://shop/success",
        cancel_url="http://shop/cancel",
        idempotency_key="checkout-ORD-1",
    )

    assert type(session) is dict
    assert session["id"] == "cs_1"
    params = calls[0]
    assert params["api_key"] == "sk_test_123"
    assert params["idempotency_key"] == "checkout-ORD-1"
    assert params["mode"] == "payment"
    assert params["metadata"] == {"order_id": "7", "user_id": "1"}
    assert params["payment_intent_data"] == {"metadata": {"order_id": "7", "user_id": "1"}}
    assert params["line_items"] == to_stripe_line_items(LINE_ITEMS)


def test_retrieve_session_expands_payment_intent(real_gateway, monkeypatch):
    calls = []

    def retrieve(session_id, **params):
        calls.append((session_id, params))
        return SdkObject(id=session_id, payment_intent={"id": "pi_1", "status": "succeeded"})

    monkeypatch.setattr(stripe.checkout.Session, "retrieve", retrieve)

    session = real_gateway.retrieve_checkout_session("cs_1")

    assert session["payment_intent"]["status"] == "succeeded"
    assert calls == [("cs_1", {"api_key": "sk_test_123", "expand": ["payment_intent"]})]


def test_transient_gateway_errors_are_retried(real_gateway, monkeypatch):
    attempts = []

    def retrieve(payment_intent_id, **params):
        attempts.append(payment_intent_id)
        if len(attempts) < 3:
            raise stripe.APIConnectionError("connection reset")
        return SdkObject(id=payment_intent_id, status="succeeded")

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)

    assert real_gateway.retrieve_payment_intent("pi_1")["status"] == "succeeded"
    assert len(attempts) == 3


def test_request_errors_are_not_retried(real_gateway, monkeypatch):
    attempts = []

    def retrieve(payment_intent_id, **params):
        attempts.append(payment_intent_id)
        raise stripe.InvalidRequestError("No such payment_intent", "id")

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)

    with pytest.raises(stripe.InvalidRequestError):
        real_gateway.retrieve_payment_intent("pi_missing")
    assert len(attempts) == 1


def test_construct_event_accepts_valid_signature(real_gateway):
    body, header = signed_event({"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}})

    event = real_gateway.construct_event(body, header)

    assert event == {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}}


@pytest.mark.parametrize(
    "header_for",
    [
        lambda body: None,
        lambda body: "garbage",
        lambda body: signed_event(json.loads(body), secret="whsec_other")[1],
        lambda body: signed_event(json.loads(body), timestamp=1_000_000)[1],
    ],
    ids=["missing", "malformed", "wrong-secret", "stale"],
)
def test_construct_event_rejects_bad_signatures(real_gateway, header_for):
    body, _ = signed_event({"id": "evt_1", "type": "checkout.session.completed"})
    with pytest.raises(InvalidRequest):
        real_gateway.construct_event(body, header_for(body))


def test_construct_event_rejects_signed_garbage_body(real_gateway):
    body = b"not json"
    ts = int(time.time())
    sig = hmac.new(WEBHOOK_SECRET.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()

    with pytest.raises(InvalidRequest):
        real_gateway.construct_event(body, f"t={ts},v1={sig}")


def test_construct_event_without_secret():
    body, header = signed_event({"id": "evt_1"})
    with pytest.raises(InvalidRequest):
        PaymentGateway(api_key="sk", webhook_secret="").construct_event(body, header)
