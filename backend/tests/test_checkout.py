from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, func, select

from app import crud
from app.api.errors import (
    DiscountRejectedError,
    EmptyCartError,
    InvalidOrderTotalError,
    OrderCreatedPaymentInitFailedError,
)
from app.enums import DiscountType, OrderStatus, PaymentStatus
from app.models import (
    CartItem,
    DiscountCode,
    DiscountUsage,
    Order,
    OrderItem,
    Payment,
    Product,
)
from app.services import checkout_service
from app.services.checkout_service import CheckoutService
from factories import auth_headers, create_discount, create_user, fill_cart


def _count(db, model) -> int:  # type: ignore[no-untyped-def]
    return db.exec(select(func.count()).select_from(model)).one()


def _cart_size(db, cart_id: int) -> int:  # type: ignore[no-untyped-def]
    return db.exec(
        select(func.count()).select_from(CartItem).where(CartItem.cart_id == cart_id)
    ).one()


def _assert_nothing_persisted(db) -> None:  # type: ignore[no-untyped-def]
    for model in (Order, OrderItem, Payment, DiscountUsage):
        assert _count(db, model) == 0


def test_checkout_without_discount(client, db, gateway):
    user = create_user(db)
    cart = fill_cart(db, user, ["100.00", "50.00"])

    r = client.post("/api/v1/orders", headers=auth_headers(user), json={})
    assert r.status_code == 200
    body = r.json()
    assert body["code"] == 0
    order = body["data"]["order"]
    assert Decimal(order["subtotal"]) == Decimal("150.00")
    assert Decimal(order["discount_amount"]) == Decimal("0")
    assert Decimal(order["total"]) == Decimal("150.00")
    assert order["status"] == "PENDING"
    assert len(order["items"]) == 2
    assert Decimal(order["payment"]["amount"]) == Decimal("150.00")
    assert order["payment"]["status"] == "PENDING"
    assert order["payment"]["payment_attempts"] == 1
    assert body["data"]["payment_url"].startswith("https://pay.example.com/")

    db.expire_all()
    assert _cart_size(db, cart.id) == 0
    # cart row survives for reuse
    assert db.get(type(cart), cart.id) is not None

    assert gateway.calls == [
        {
            "order_id": order["id"],
            "amount": Decimal("150.00"),
            "email": "buyer@example.com",
            "full_name": "Ada Lovelace",
            "attempt": 1,
        }
    ]


def test_checkout_snapshots_locked_prices_and_product_data(client, db):
    user = create_user(db)
    fill_cart(db, user, ["30.00"])
    product = db.exec(select(Product)).one()
    # price changes after the item was added
    product.price = Decimal("99.00")
    db.add(product)
    db.commit()

    r = client.post("/api/v1/orders", headers=auth_headers(user))
    assert r.status_code == 200
    item = r.json()["data"]["order"]["items"][0]
    assert Decimal(item["price"]) == Decimal("30.00")
    assert item["title"] == product.title
    assert item["author_name"] == product.author_name
    assert item["pdf_file"] == product.pdf_file

    # later catalog edits don't reach the order
    db.delete(product)
    db.commit()
    db.expire_all()
    order_item = db.exec(select(OrderItem)).one()
    assert order_item.price == Decimal("30.00")
    assert order_item.pdf_file.endswith(".pdf")


def test_checkout_with_percentage_discount(client, db):
    user = create_user(db)
    fill_cart(db, user, ["120.00", "80.00"])
    discount = create_discount(db, code="SUMMER20", value="20")

    r = client.post(
        "/api/v1/orders", headers=auth_headers(user), json={"discount_code": "summer20"}
    )
    assert r.status_code == 200
    order = r.json()["data"]["order"]
    assert Decimal(order["subtotal"]) == Decimal("200.00")
    assert Decimal(order["discount_amount"]) == Decimal("40.00")
    assert Decimal(order["total"]) == Decimal("160.00")
    assert order["discount_code_used"] == "SUMMER20"

    db.expire_all()
    usage = db.exec(select(DiscountUsage)).one()
    assert usage.user_id == user.id
    assert usage.order_id == order["id"]
    assert usage.discount_code_id == discount.id
    assert db.get(DiscountCode, discount.id).usage_count == 1

    row = db.get(Order, order["id"])
    assert row.total == row.subtotal - row.discount_amount
    assert row.total > 0
    assert db.get(Order, order["id"]).discount_code_id == discount.id
    payment = db.exec(select(Payment).where(Payment.order_id == order["id"])).one()
    assert payment.amount == row.total


def test_checkout_with_capped_fixed_discount(client, db):
    user = create_user(db)
    fill_cart(db, user, ["25.00"])
    create_discount(db, code="TEN", discount_type=DiscountType.fixed_amount, value="10")

    r = client.post("/api/v1/orders", headers=auth_headers(user), json={"discount_code": "TEN"})
    assert r.status_code == 200
    assert Decimal(r.json()["data"]["order"]["total"]) == Decimal("15.00")


def test_checkout_empty_cart_creates_nothing(client, db, gateway):
    user = create_user(db)

    r = client.post("/api/v1/orders", headers=auth_headers(user))
    assert r.status_code == 400
    assert r.json()["code"] == 400301

    fill_cart(db, user, [])
    r = client.post("/api/v1/orders", headers=auth_headers(user))
    assert r.status_code == 400
    assert r.json()["code"] == 400301

    db.expire_all()
    _assert_nothing_persisted(db)
    assert gateway.calls == []


@pytest.mark.parametrize(
    ("dtype", "value"),
    [(DiscountType.percentage, "100"), (DiscountType.fixed_amount, "500")],
)
def test_fully_discounted_order_is_rejected_before_persistence(client, db, dtype, value):
    user = create_user(db)
    cart = fill_cart(db, user, ["40.00", "10.00"])
    discount = create_discount(db, code="FREE", discount_type=dtype, value=value)

    r = client.post("/api/v1/orders", headers=auth_headers(user), json={"discount_code": "FREE"})
    assert r.status_code == 400
    assert r.json()["code"] == 400302

    db.expire_all()
    _assert_nothing_persisted(db)
    assert _cart_size(db, cart.id) == 2
    assert db.get(DiscountCode, discount.id).usage_count == 0


def test_rejected_discount_leaves_cart_intact(client, db):
    user = create_user(db)
    cart = fill_cart(db, user, ["40.00"])

    r = client.post("/api/v1/orders", headers=auth_headers(user), json={"discount_code": "NOPE"})
    assert r.status_code == 400
    assert r.json()["code"] == 400311

    db.expire_all()
    _assert_nothing_persisted(db)
    assert _cart_size(db, cart.id) == 1


def test_per_user_limit_across_checkouts(client, db):
    alice = create_user(db, email="alice@example.com")
    bob = create_user(db, email="bob@example.com")
    create_discount(db, code="ONCE", per_user_limit=1, usage_limit=2)

    fill_cart(db, alice, ["10.00"])
    r = client.post("/api/v1/orders", headers=auth_headers(alice), json={"discount_code": "ONCE"})
    assert r.status_code == 200

    # alice refills her cart (the cart row is reused) and tries again
    db.expire_all()
    product = db.exec(select(Product)).first()
    r = client.post(
        "/api/v1/cart/items", headers=auth_headers(alice), json={"product_id": product.id}
    )
    assert r.status_code == 200
    r = client.post("/api/v1/orders", headers=auth_headers(alice), json={"discount_code": "ONCE"})
    assert r.status_code == 400
    assert r.json()["code"] == 400316

    fill_cart(db, bob, ["20.00"])
    r = client.post("/api/v1/orders", headers=auth_headers(bob), json={"discount_code": "ONCE"})
    assert r.status_code == 200

    db.expire_all()
    assert db.exec(select(DiscountCode)).one().usage_count == 2


def test_exhausted_code_between_validation_and_commit_rolls_back(db, gateway, monkeypatch):
    # validation passed on a stale read; the atomic increment must still refuse
    user = create_user(db)
    cart = fill_cart(db, user, ["60.00"])
    discount = create_discount(db, code="LAST", usage_limit=1, usage_count=1)
    monkeypatch.setattr(checkout_service, "validate_discount", lambda **_: discount)

    with pytest.raises(DiscountRejectedError) as exc:
        CheckoutService(db, gateway).create_order(user_id=user.id, discount_code="LAST")
    assert exc.value.status_code == 400

    db.expire_all()
    _assert_nothing_persisted(db)
    assert _cart_size(db, cart.id) == 1
    assert db.get(DiscountCode, discount.id).usage_count == 1
    assert gateway.calls == []


def test_second_checkout_sees_empty_cart(db, gateway):
    user = create_user(db)
    fill_cart(db, user, ["15.00"])
    service = CheckoutService(db, gateway)
    result = service.create_order(user_id=user.id)
    assert result.order.status == OrderStatus.pending

    with pytest.raises(EmptyCartError):
        service.create_order(user_id=user.id)
    assert _count(db, Order) == 1


def test_service_rejects_non_positive_total(db, gateway):
    user = create_user(db)
    fill_cart(db, user, ["5.00"])
    create_discount(db, code="ALL", discount_type=DiscountType.fixed_amount, value="5")
    with pytest.raises(InvalidOrderTotalError):
        CheckoutService(db, gateway).create_order(user_id=user.id, discount_code="ALL")
    _assert_nothing_persisted(db)


def test_gateway_failure_keeps_order_and_reports_retryable_error(client, db, gateway):
    user = create_user(db)
    cart = fill_cart(db, user, ["70.00"])
    discount = create_discount(db, code="FIVE", discount_type=DiscountType.fixed_amount, value="5")
    gateway.fail = True

    r = client.post("/api/v1/orders", headers=auth_headers(user), json={"discount_code": "FIVE"})
    assert r.status_code == 502
    body = r.json()
    assert body["code"] == 502302
    order_id = body["data"]["order_id"]

    db.expire_all()
    order = db.get(Order, order_id)
    assert order.status == OrderStatus.pending
    assert order.total == Decimal("65.00")
    payment = db.exec(select(Payment).where(Payment.order_id == order_id)).one()
    assert payment.status == PaymentStatus.pending
    assert payment.payment_attempts == 1
    assert _cart_size(db, cart.id) == 0
    assert db.get(DiscountCode, discount.id).usage_count == 1

    # checking out again does not create a second order
    r = client.post("/api/v1/orders", headers=auth_headers(user), json={"discount_code": "FIVE"})
    assert r.status_code == 400
    assert r.json()["code"] == 400301

    # retry only the payment URL step
    gateway.fail = False
    r = client.post(f"/api/v1/orders/{order_id}/payment", headers=auth_headers(user))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["order"]["id"] == order_id
    assert data["payment_url"].endswith(f"tok_{order_id}_2")
    assert gateway.calls[-1]["attempt"] == 2
    assert gateway.calls[-1]["amount"] == Decimal("65.00")

    db.expire_all()
    assert _count(db, Order) == 1
    assert _count(db, DiscountUsage) == 1
    assert db.get(DiscountCode, discount.id).usage_count == 1
    payment = db.exec(select(Payment).where(Payment.order_id == order_id)).one()
    assert payment.payment_attempts == 2


def test_retry_payment_failure_is_502(client, db, gateway):
    user = create_user(db)
    fill_cart(db, user, ["70.00"])
    gateway.fail = True
    order_id = client.post("/api/v1/orders", headers=auth_headers(user)).json()["data"]["order_id"]

    r = client.post(f"/api/v1/orders/{order_id}/payment", headers=auth_headers(user))
    assert r.status_code == 502
    assert r.json()["code"] == 502301


def test_retry_payment_requires_owner(client, db):
    owner = create_user(db, email="owner@example.com")
    other = create_user(db, email="other@example.com")
    fill_cart(db, owner, ["10.00"])
    order_id = client.post("/api/v1/orders", headers=auth_headers(owner)).json()["data"]["order"]["id"]

    r = client.post(f"/api/v1/orders/{order_id}/payment", headers=auth_headers(other))
    assert r.status_code == 404
    assert r.json()["code"] == 404301


def test_retry_payment_refused_once_webhook_arrived(client, db):
    user = create_user(db)
    fill_cart(db, user, ["10.00"])
    order_id = client.post("/api/v1/orders", headers=auth_headers(user)).json()["data"]["order"]["id"]

    payment = db.exec(select(Payment).where(Payment.order_id == order_id)).one()
    payment.webhook_received = True
    db.add(payment)
    db.commit()

    r = client.post(f"/api/v1/orders/{order_id}/payment", headers=auth_headers(user))
    assert r.status_code == 409
    assert r.json()["code"] == 409301


def test_concurrent_retries_get_distinct_attempts(engine, db, gateway, monkeypatch):
    user = create_user(db)
    user_id = user.id
    fill_cart(db, user, ["30.00"])
    order_id = CheckoutService(db, gateway).create_order(user_id=user_id).order.id

    real_get_payment = crud.get_payment_for_order
    competed: list[bool] = []

    def get_payment_then_compete(*, session, order_id, for_update=False):  # type: ignore[no-untyped-def]
        payment = real_get_payment(session=session, order_id=order_id, for_update=for_update)
        if not competed:
            # a second retry finishes while the first still holds its read
            competed.append(True)
            with Session(engine) as other:
                CheckoutService(other, gateway).retry_payment(user_id=user_id, order_id=order_id)
        return payment

    monkeypatch.setattr(crud, "get_payment_for_order", get_payment_then_compete)
    with Session(engine) as first:
        CheckoutService(first, gateway).retry_payment(user_id=user_id, order_id=order_id)

    attempts = [call["attempt"] for call in gateway.calls]
    assert attempts == [1, 2, 3]
    db.expire_all()
    payment = db.exec(select(Payment).where(Payment.order_id == order_id)).one()
    assert payment.payment_attempts == 3


def test_attempt_claim_refused_after_webhook(db, gateway):
    user = create_user(db)
    fill_cart(db, user, ["30.00"])
    payment = CheckoutService(db, gateway).create_order(user_id=user.id).payment
    assert crud.claim_payment_attempt(session=db, payment_id=payment.id) == 2
    db.commit()

    payment.webhook_received = True
    db.add(payment)
    db.commit()
    assert crud.claim_payment_attempt(session=db, payment_id=payment.id) is None
    db.rollback()


def test_unexpected_failure_after_commit_names_the_order(db, gateway, monkeypatch):
    user = create_user(db)
    fill_cart(db, user, ["30.00"])

    def broken_claim(**kwargs):  # type: ignore[no-untyped-def]
        raise OperationalError("UPDATE payments", {}, Exception("database is locked"))

    monkeypatch.setattr(crud, "claim_payment_attempt", broken_claim)
    with pytest.raises(OrderCreatedPaymentInitFailedError) as exc:
        CheckoutService(db, gateway).create_order(user_id=user.id)

    assert exc.value.status_code == 502
    db.expire_all()
    order = db.get(Order, exc.value.order_id)
    assert order is not None
    assert order.status == OrderStatus.pending
    assert gateway.calls == []


def test_order_queries(client, db):
    user = create_user(db)
    other = create_user(db, email="other@example.com")
    fill_cart(db, user, ["10.00"])
    first = client.post("/api/v1/orders", headers=auth_headers(user)).json()["data"]["order"]

    r = client.get("/api/v1/orders", headers=auth_headers(user))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["count"] == 1
    assert data["data"][0]["id"] == first["id"]
    assert data["data"][0]["items"][0]["title"] == "Book 0"

    r = client.get(f"/api/v1/orders/{first['id']}", headers=auth_headers(user))
    assert r.status_code == 200
    assert r.json()["data"]["payment"]["status"] == "PENDING"

    r = client.get(f"/api/v1/orders/{first['id']}", headers=auth_headers(other))
    assert r.status_code == 404

    r = client.get("/api/v1/orders", headers=auth_headers(other))
    assert r.json()["data"]["count"] == 0


def test_checkout_requires_authentication(client):
    r = client.post("/api/v1/orders")
    assert r.status_code in (401, 403)
