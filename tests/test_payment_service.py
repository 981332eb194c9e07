from decimal import Decimal

import pytest

from storefront.data.models import InventoryTransactionModel, OrderModel, PaymentModel, ProductVariantModel
from storefront.domain.errors import InvalidRequest, NotFound, PaymentNotConfirmed
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService

from conftest import signed_event


@pytest.fixture
def payments(db, gateway, notifier, lock_service):
    return PaymentService(db, gateway=gateway, notifier=notifier, lock_service=lock_service)


@pytest.fixture
def checked_out(db, user, address, catalog, gateway, coupon_verifier):
    """Koszyk z 2x shoe_42 po checkoucie, zamowienie czeka na platnosc."""
    CartService(db).add_item(user.id, catalog["shoe_42"].id, 2)
    result = CheckoutService(db, gateway=gateway, coupon_verifier=coupon_verifier).create_checkout_session(
        user.id, address.id
    )
    db.commit()
    return result


def _order(db, order_id):
    db.expire_all()
    return db.get(OrderModel, order_id)


def _completed_event(result, event_id="evt_1", event_type="checkout.session.completed", payment_status="paid"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": result["session_id"],
                "payment_intent": f"pi_{result['session_id']}",
                "payment_status": payment_status,
                "metadata": {"order_id": str(result["order_id"])},
            }
        },
    }


def test_verify_payment_finalizes_once(db, user, catalog, payments, gateway, notifier, checked_out):
    gateway.pay(checked_out["session_id"])

    out = payments.verify_payment(user.id, checked_out["order_id"])

    assert out["status"] == "succeeded"
    assert out["already_processed"] is False
    assert out["payment_reference"] == "pi_cs_test_1"

    order = _order(db, checked_out["order_id"])
    assert order.payment_status == "paid"
    assert order.order_status == "processing"
    assert db.get(ProductVariantModel, catalog["shoe_42"].id).stock == 8
    assert CartService(db).get_cart(user.id)["items"] == []
    assert notifier.kinds() == ["order_confirmation", "order_invoice", "admin_new_order"]
    assert notifier.sent[0][1]["to"] == "jan@example.com"

    payment = db.query(PaymentModel).filter(PaymentModel.order_id == order.id).one()
    assert payment.status == "succeeded"
    assert payment.gateway_payment_intent_id == "pi_cs_test_1"
    assert payment.amount == Decimal("99.98")

    again = payments.verify_payment(user.id, checked_out["order_id"], session_id=checked_out["session_id"])
    assert again["already_processed"] is True
    assert len(notifier.sent) == 3
    assert db.get(ProductVariantModel, catalog["shoe_42"].id).stock == 8


def test_verify_payment_not_confirmed(db, user, payments, gateway, notifier, checked_out):
    gateway.pay(checked_out["session_id"], status="requires_payment_method")

    with pytest.raises(PaymentNotConfirmed):
        payments.verify_payment(user.id, checked_out["order_id"])

    order = _order(db, checked_out["order_id"])
    assert order.payment_status == "pending"
    assert notifier.sent == []
    payment = db.query(PaymentModel).filter(PaymentModel.order_id == order.id).one()
    assert payment.status == "requires_payment_method"


def test_verify_payment_by_intent_id(db, user, payments, gateway, checked_out):
    intent = gateway.pay(checked_out["session_id"], status="requires_capture")
    _order(db, checked_out["order_id"]).gateway_session_id = None
    db.commit()

    out = payments.verify_payment(user.id, checked_out["order_id"], payment_intent=intent["id"])

    assert out["status"] == "requires_capture"
    assert _order(db, checked_out["order_id"]).payment_status == "paid"


def test_verify_payment_of_someone_elses_order(db, other_user, payments, gateway, checked_out):
    gateway.pay(checked_out["session_id"])
    with pytest.raises(NotFound):
        payments.verify_payment(other_user.id, checked_out["order_id"])


def test_verify_payment_without_session(db, user, payments, checked_out):
    _order(db, checked_out["order_id"]).gateway_session_id = None
    db.commit()
    with pytest.raises(InvalidRequest):
        payments.verify_payment(user.id, checked_out["order_id"])


def test_webhook_rejects_bad_signature(db, payments, checked_out):
    body, _ = signed_event(_completed_event(checked_out))
    _, forged = signed_event(_completed_event(checked_out), secret="whsec_other")

    with pytest.raises(InvalidRequest):
        payments.handle_webhook(body, forged)
    with pytest.raises(InvalidRequest):
        payments.handle_webhook(body, None)
    with pytest.raises(InvalidRequest):
        payments.handle_webhook(body, "garbage")

    assert _order(db, checked_out["order_id"]).payment_status == "pending"


def test_webhook_rejects_stale_signature(db, payments, checked_out):
    body, header = signed_event(_completed_event(checked_out), timestamp=1_000_000)
    with pytest.raises(InvalidRequest):
        payments.handle_webhook(body, header)


def test_webhook_completed_and_duplicate_delivery(db, catalog, payments, notifier, fake_redis, checked_out):
    body, header = signed_event(_completed_event(checked_out))

    first = payments.handle_webhook(body, header)
    second = payments.handle_webhook(body, header)

    assert first == {"received": True, "handled": True}
    assert second["duplicate"] is True
    assert "payment:webhook:evt_1" in fake_redis.store

    order = _order(db, checked_out["order_id"])
    assert order.payment_status == "paid"
    assert order.payment_reference == "pi_cs_test_1"
    assert db.get(ProductVariantModel, catalog["shoe_42"].id).stock == 8
    assert len(notifier.sent) == 3


def test_webhook_redelivery_with_new_event_id_is_idempotent(db, catalog, payments, checked_out):
    for event_id in ("evt_1", "evt_2"):
        body, header = signed_event(_completed_event(checked_out, event_id))
        payments.handle_webhook(body, header)

    db.expire_all()
    ledger = (
        db.query(InventoryTransactionModel)
        .filter(InventoryTransactionModel.reference_id == checked_out["order_id"])
        .all()
    )
    assert len(ledger) == 1
    assert db.get(ProductVariantModel, catalog["shoe_42"].id).stock == 8


def test_webhook_session_expired_marks_failed(db, payments, checked_out):
    event = {
        "id": "evt_exp",
        "type": "checkout.session.expired",
        "data": {"object": {"metadata": {"order_id": str(checked_out["order_id"])}}},
    }
    body, header = signed_event(event)

    assert payments.handle_webhook(body, header)["handled"] is True
    assert _order(db, checked_out["order_id"]).payment_status == "failed"


def test_webhook_for_cancelled_order_is_acknowledged(db, catalog, payments, checked_out):
    OrderService(db).cancel_order(checked_out["order_id"])
    db.commit()

    body, header = signed_event(_completed_event(checked_out))
    out = payments.handle_webhook(body, header)

    assert out == {"received": True, "handled": False}
    order = _order(db, checked_out["order_id"])
    assert order.order_status == "cancelled"
    assert order.payment_status == "pending"
    assert db.get(ProductVariantModel, catalog["shoe_42"].id).stock == 10


def test_webhook_unexpected_error_releases_claim(db, payments, fake_redis, checked_out, monkeypatch):
    def boom(order_id, payment_reference=None):
        raise RuntimeError("db down")

    monkeypatch.setattr(payments, "finalize", boom)
    body, header = signed_event(_completed_event(checked_out))

    with pytest.raises(RuntimeError):
        payments.handle_webhook(body, header)
    assert fake_redis.store == {}

    monkeypatch.undo()
    assert payments.handle_webhook(body, header)["handled"] is True


def test_webhook_ignores_other_events(db, payments, fake_redis):
    body, header = signed_event({"id": "evt_x", "type": "customer.created", "data": {"object": {}}})
    assert payments.handle_webhook(body, header) == {"received": True, "handled": False}
    assert fake_redis.store == {}


def test_webhook_completed_without_payment_does_not_finalize(db, catalog, payments, notifier, checked_out):
    body, header = signed_event(_completed_event(checked_out, payment_status="unpaid"))

    assert payments.handle_webhook(body, header) == {"received": True, "handled": False}

    order = _order(db, checked_out["order_id"])
    assert order.payment_status == "pending"
    assert order.order_status == "created"
    assert db.get(ProductVariantModel, catalog["shoe_42"].id).stock == 10
    assert notifier.sent == []


def test_webhook_async_payment_succeeded_finalizes(db, catalog, payments, notifier, checked_out):
    pending, header = signed_event(_completed_event(checked_out, "evt_1", payment_status="unpaid"))
    payments.handle_webhook(pending, header)

    body, header = signed_event(
        _completed_event(checked_out, "evt_2", event_type="checkout.session.async_payment_succeeded")
    )
    assert payments.handle_webhook(body, header) == {"received": True, "handled": True}

    order = _order(db, checked_out["order_id"])
    assert order.payment_status == "paid"
    assert order.order_status == "processing"
    assert db.get(ProductVariantModel, catalog["shoe_42"].id).stock == 8
    assert notifier.kinds() == ["order_confirmation", "order_invoice", "admin_new_order"]
