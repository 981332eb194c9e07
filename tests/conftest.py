"""Wspolne fixture'y testow: SQLite w pamieci, katalog, fake'i uslug zewnetrznych."""

import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.api import create_app
from storefront.api.deps import get_coupon_verifier, get_gateway, get_lock_service, get_notifier
from storefront.data import models  # noqa: F401
from storefront.data.database import Base, get_db
from storefront.data.models import (
    AddressModel,
    CategoryModel,
    ProductModel,
    ProductVariantModel,
    SaleModel,
    UserModel,
)
from storefront.domain.pricing import line_items_total
from storefront.domain.schemas import CouponVerification
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NOTIFICATION_KINDS
from storefront.services.payment_gateway import PaymentGateway

WEBHOOK_SECRET = "whsec_test"

# Jedno polaczenie dla calego testu, baza zyje tak dlugo jak engine
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite sam zarzadza BEGIN, co psuje SAVEPOINT (begin_nested)
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


#
# Fakes
#

class FakeGateway(PaymentGateway):
    """Bramka bez sieci, podpis webhooka liczony naprawde."""

    def __init__(self):
        super().__init__(api_key="sk_test", webhook_secret=WEBHOOK_SECRET)
        self.sessions = {}
        self.intents = {}
        self.created = []
        self.fail_create = False

    def create_checkout_session(self, line_items, metadata, success_url, cancel_url, idempotency_key=None):
        if self.fail_create:
            raise stripe.APIConnectionError("gateway down")
        session_id = f"cs_test_{len(self.created) + 1}"
        session = {
            "id": session_id,
            "url": f"https://pay.test/{session_id}",
            "payment_status": "unpaid",
            "payment_intent": None,
            "amount_total": line_items_total(line_items),
            "metadata": {k: str(v) for k, v in metadata.items()},
            "line_items": line_items,
            "success_url": success_url,
            "idempotency_key": idempotency_key,
        }
        self.sessions[session_id] = session
        self.created.append(session)
        return session

    def retrieve_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise stripe.InvalidRequestError(f"No such checkout.session: {session_id}", "id")
        return self.sessions[session_id]

    def retrieve_payment_intent(self, payment_intent_id):
        if payment_intent_id not in self.intents:
            raise stripe.InvalidRequestError(f"No such payment_intent: {payment_intent_id}", "id")
        return self.intents[payment_intent_id]

    def pay(self, session_id, status="succeeded"):
        session = self.sessions[session_id]
        intent = {
            "id": f"pi_{session_id}",
            "status": status,
            "amount": session["amount_total"],
            "currency": "usd",
        }
        self.intents[intent["id"]] = intent
        session["payment_intent"] = intent["id"]
        if status == "succeeded":
            session["payment_status"] = "paid"
        return intent


class FakeCouponVerifier:
    def __init__(self, result=None):
        self.result = result or CouponVerification(success=True, discount=Decimal("0.00"))
        self.calls = []

    def verify(self, code, user_id, channel, subtotal, shipping_cost, items, coupon_id=None):
        self.calls.append(
            {
                "code": code,
                "coupon_id": coupon_id,
                "user_id": user_id,
                "channel": channel,
                "subtotal": subtotal,
                "shipping_cost": shipping_cost,
                "items": items,
            }
        )
        return self.result


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def enqueue(self, kind, payload):
        if kind not in NOTIFICATION_KINDS:
            raise ValueError(kind)
        # payload musi przejsc przez serializer json Celery
        json.dumps(payload)
        self.sent.append((kind, payload))

    def kinds(self):
        return [kind for kind, _ in self.sent]


class FakeRedis:
    """Tyle Redisa, ile potrzebuje LockService."""

    def __init__(self):
        self.store = {}

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


def signed_event(event: dict, secret: str = WEBHOOK_SECRET, timestamp: int | None = None):
    body = json.dumps(event).encode()
    timestamp = timestamp or int(time.time())
    # naglowek Stripe-Signature: HMAC-SHA256 z "<t>.<body>"
    signature = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
    return body, f"t={timestamp},v1={signature}"


#
# Fixtures
#

@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def catalog(db):
    """
    Kategoria + produkt "Running Shoe" z wariantami:
    - shoe_42: 49.99, stan 10
    - shoe_44: 49.99, stan 5
    - last_one: 20.00, stan 1
    - gift_card: 15.00, stan nie sledzony
    """
    category = CategoryModel(name="Men Shoes")
    db.add(category)
    db.flush()

    shoe = ProductModel(name="Running Shoe", default_category_id=category.id, product_img="shoe.png", brand_name="Acme")
    card = ProductModel(name="Gift Card", brand_name="Acme")
    db.add_all([shoe, card])
    db.flush()

    variants = {
        "shoe_42": ProductVariantModel(product_id=shoe.id, sku="SHOE-42", price=Decimal("49.99"), stock=10, size="42", color="black"),
        "shoe_44": ProductVariantModel(product_id=shoe.id, sku="SHOE-44", price=Decimal("49.99"), stock=5, size="44", color="black"),
        "last_one": ProductVariantModel(product_id=shoe.id, sku="SHOE-46", price=Decimal("20.00"), stock=1, size="46", color="red"),
        "gift_card": ProductVariantModel(product_id=card.id, sku="GIFT", price=Decimal("15.00"), stock=None),
    }
    db.add_all(variants.values())
    db.commit()

    return {"category": category, "shoe": shoe, "card": card, **variants}


@pytest.fixture
def user(db):
    u = UserModel(id=1, full_name="Jan Kowalski", email="jan@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = UserModel(id=2, full_name="Anna Nowak", email="anna@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def address(db, user):
    a = AddressModel(
        user_id=user.id,
        label="dom",
        street="Dluga 1",
        city="Warszawa",
        postal_code="00-001",
        country="PL",
        mobile="+48123456789",
    )
    db.add(a)
    db.commit()
    return a


@pytest.fixture
def add_sale(db, now):
    def _add(product, pct, start_at=None, end_at=None, active=True):
        sale = SaleModel(
            product_id=product.id,
            discount_percent=Decimal(str(pct)),
            active=active,
            start_at=start_at if start_at is not None else now - timedelta(days=1),
            end_at=end_at if end_at is not None else now + timedelta(days=1),
        )
        db.add(sale)
        db.commit()
        return sale

    return _add


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def coupon_verifier():
    return FakeCouponVerifier()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def lock_service(fake_redis):
    return LockService(client=fake_redis)


@pytest.fixture
def client(db, gateway, coupon_verifier, notifier, lock_service):
    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_coupon_verifier] = lambda: coupon_verifier
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_lock_service] = lambda: lock_service

    with TestClient(app) as c:
        yield c
