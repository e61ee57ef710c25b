from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from app.api.deps import get_db, get_discount_store, get_notifier, get_payment_gateway
from app.api.errors import PaymentInitializationError
from app.core.config import settings
from app.integrations.paymob import PaymentSession, merchant_reference
from app.main import app
from app.models import (
    Cart,
    CartItem,
    DiscountCode,
    DiscountUsage,
    Order,
    OrderItem,
    Payment,
    Product,
    User,
)
from app.services.cart_discount_store import AppliedDiscountStore
from factories import HMAC_SECRET


class FakeGateway:
    """Records ``create_payment`` calls; set ``fail = True`` to simulate an outage."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail = False

    def create_payment(self, *, order_id, amount, email, full_name, attempt=1):  # type: ignore[no-untyped-def]
        self.calls.append(
            {
                "order_id": order_id,
                "amount": amount,
                "email": email,
                "full_name": full_name,
                "attempt": attempt,
            }
        )
        if self.fail:
            raise PaymentInitializationError()
        return PaymentSession(
            payment_url=f"https://pay.example.com/iframes/1?payment_token=tok_{order_id}_{attempt}",
            remote_order_id=1000 + attempt,
            merchant_reference=merchant_reference(order_id, attempt),
        )


class FakeNotifier:
    def __init__(self) -> None:
        self.notified: list[int] = []

    def notify_payment_succeeded(self, order_id: int) -> None:
        self.notified.append(order_id)


class FakeRedis:
    """In-memory stand-in for the few Redis commands the app uses."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.streams: dict[str, list[dict]] = {}

    def get(self, key):  # type: ignore[no-untyped-def]
        return self.values.get(key)

    def set(self, key, value, ex=None):  # type: ignore[no-untyped-def]
        self.values[key] = value
        return True

    def delete(self, *keys):  # type: ignore[no-untyped-def]
        return sum(1 for k in keys if self.values.pop(k, None) is not None)

    def xadd(self, stream, fields):  # type: ignore[no-untyped-def]
        self.streams.setdefault(stream, []).append(fields)


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()
        # Clean tables after each test (children first).
        session.exec(delete(Payment))
        session.exec(delete(DiscountUsage))
        session.exec(delete(OrderItem))
        session.exec(delete(Order))
        session.exec(delete(CartItem))
        session.exec(delete(Cart))
        session.exec(delete(DiscountCode))
        session.exec(delete(Product))
        session.exec(delete(User))
        session.commit()


@pytest.fixture(autouse=True)
def hmac_secret(monkeypatch):
    monkeypatch.setattr(settings, "PAYMOB_HMAC_SECRET", HMAC_SECRET)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(scope="function")
def client(engine, db, gateway, notifier, fake_redis) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_discount_store] = lambda: AppliedDiscountStore(lambda: fake_redis)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
