import hashlib
import hmac
import json
import os
import time
from decimal import Decimal
from types import SimpleNamespace

# przed importem pakietu, settings czyta env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-lanka-basket-orders"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "whsec_test"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"

import jwt
import pytest
from fastapi.testclient import TestClient
from redis.exceptions import RedisError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lanka_basket.api import deps
from lanka_basket.data.database import Base, get_db
from lanka_basket.data.models import AddressModel, CartItemModel, ProductModel, UserModel
from lanka_basket.main import create_app
from lanka_basket.services.checkout_service import CheckoutService

WEBHOOK_SECRET = "whsec_test"
JWT_SECRET = "test-secret-key-for-lanka-basket-orders"


class FakePaymentClient:
    def __init__(self):
        self.calls = []
        self.error = None

    def create_checkout_session(self, **kwargs):
        if self.error:
            raise self.error
        self.calls.append(kwargs)
        n = len(self.calls)
        return {"id": f"cs_test_{n}", "url": f"https://checkout.example/pay/cs_test_{n}"}


class FakeLockService:
    def __init__(self):
        self.locks = {}
        self.unavailable = False

    def acquire_session_lock(self, session_id, owner, ttl):
        if self.unavailable:
            raise RedisError("connection refused")
        if session_id in self.locks:
            return False
        self.locks[session_id] = owner
        return True

    def release_session_lock(self, session_id, owner):
        if self.unavailable:
            raise RedisError("connection refused")
        if self.locks.get(session_id) == owner:
            del self.locks[session_id]
            return True
        return False


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send_order_notification(self, user_id, order_id, payment_method):
        self.sent.append((user_id, order_id, payment_method))


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def shop(db_session):
    customer = UserModel(name="Nimal", email="nimal@example.lk", role="USER")
    other = UserModel(name="Kamala", email="kamala@example.lk", role="USER")
    admin = UserModel(name="Admin", email="admin@example.lk", role="ADMIN")
    db_session.add_all([customer, other, admin])
    db_session.flush()

    tea = ProductModel(name="Ceylon Tea", price=Decimal("5.99"), discount=0, stock=10)
    oil = ProductModel(name="Coconut Oil", price=Decimal("2.00"), discount=0, stock=5)
    rice = ProductModel(name="Basmati Rice", price=Decimal("12.50"), discount=10, stock=3)
    hidden = ProductModel(name="Draft Item", price=Decimal("1.00"), stock=10, publish=False)
    db_session.add_all([tea, oil, rice, hidden])
    db_session.flush()

    home = AddressModel(
        user_id=customer.id,
        address_line="12 Galle Road",
        city="Colombo",
        state="Western",
        pincode="00300",
        country="Sri Lanka",
        mobile="+94770000000",
    )
    old = AddressModel(
        user_id=customer.id,
        address_line="1 Old Street",
        city="Kandy",
        state="Central",
        pincode="20000",
        country="Sri Lanka",
        status=False,
    )
    elsewhere = AddressModel(
        user_id=other.id,
        address_line="5 Beach Road",
        city="Galle",
        state="Southern",
        pincode="80000",
        country="Sri Lanka",
    )
    db_session.add_all([home, old, elsewhere])
    db_session.flush()

    db_session.add_all(
        [
            CartItemModel(user_id=customer.id, product_id=tea.id, quantity=2),
            CartItemModel(user_id=customer.id, product_id=oil.id, quantity=1),
            CartItemModel(user_id=customer.id, product_id=rice.id, quantity=1),
        ]
    )
    db_session.commit()

    return SimpleNamespace(
        customer=customer,
        other=other,
        admin=admin,
        tea=tea,
        oil=oil,
        rice=rice,
        hidden=hidden,
        address=home,
        disabled_address=old,
        foreign_address=elsewhere,
    )


@pytest.fixture
def payment_client():
    return FakePaymentClient()


@pytest.fixture
def lock_service():
    return FakeLockService()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def checkout(db_session, payment_client, lock_service, notifier):
    return CheckoutService(
        db=db_session,
        payment_client=payment_client,
        lock_service=lock_service,
        notification_service=notifier,
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def client(db_session, payment_client, lock_service, notifier):
    app = create_app(init_db=False)

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_payment_client] = lambda: payment_client
    app.dependency_overrides[deps.get_lock_service] = lambda: lock_service
    app.dependency_overrides[deps.get_notification_service] = lambda: notifier
    return TestClient(app)


def auth_headers(user) -> dict:
    token = jwt.encode({"id": user.id}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def line(product, quantity) -> SimpleNamespace:
    return SimpleNamespace(product_id=product.id, quantity=quantity)


def paid_session_event(metadata, session_id="cs_test_1", event_id="evt_1", **session_fields):
    session = {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": "paid",
        "payment_intent": "pi_test_1",
        "metadata": metadata,
    }
    session.update(session_fields)
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": session},
    }


def signature_header(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    # naglowek w formacie Stripe-Signature, jak wysyla processor
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def signed(event: dict, secret: str = WEBHOOK_SECRET, timestamp: int | None = None):
    payload = json.dumps(event).encode()
    ts = int(time.time()) if timestamp is None else timestamp
    return payload, signature_header(payload, secret, ts)
