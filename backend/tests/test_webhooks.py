from __future__ import annotations

from decimal import Decimal

import pytest
from sqlmodel import select

from app.api.deps import get_notifier
from app.api.errors import InvalidSignatureError
from app.enums import OrderStatus, PaymentMethod, PaymentStatus
from app.main import app
from app.models import Order, Payment
from app.services import payment_reconciler
from app.services.checkout_service import CheckoutService
from app.services.notification_service import ReceiptNotifier
from app.services.payment_reconciler import handle_webhook, map_payment_method
from factories import HMAC_SECRET, create_user, fill_cart, signed_payload, transaction_obj

WEBHOOK_URL = "/api/v1/webhooks/paymob"


@pytest.fixture
def pending_order(db, gateway) -> Order:  # type: ignore[no-untyped-def]
    user = create_user(db)
    fill_cart(db, user, ["100.00", "50.00"])
    return CheckoutService(db, gateway).create_order(user_id=user.id).order


def _payment(db, order_id: int) -> Payment:  # type: ignore[no-untyped-def]
    db.expire_all()
    return db.exec(select(Payment).where(Payment.order_id == order_id)).one()


def _order(db, order_id: int) -> Order:  # type: ignore[no-untyped-def]
    db.expire_all()
    return db.get(Order, order_id)


def test_successful_webhook_marks_order_paid(client, db, notifier, pending_order):
    payload, signature = signed_payload(transaction_obj(pending_order.id))

    r = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    assert r.status_code == 200
    body = r.json()
    assert body["code"] == 0
    assert body["data"]["received"] is True
    assert body["data"]["order_id"] == pending_order.id

    payment = _payment(db, pending_order.id)
    order = _order(db, pending_order.id)
    assert order.status == OrderStatus.paid
    assert order.paid_at is not None
    assert payment.status == PaymentStatus.completed
    assert payment.webhook_received is True
    assert payment.amount == Decimal("150.00")
    assert payment.external_transaction_id == "192036465"
    assert payment.external_order_id == "217503754"
    assert payment.payment_method == PaymentMethod.card
    assert payment.paid_at is not None
    assert payment.webhook_data == payload
    assert notifier.notified == [pending_order.id]


def test_replayed_webhook_is_a_no_op(client, db, notifier, pending_order):
    payload, signature = signed_payload(transaction_obj(pending_order.id))

    first = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    paid_at = _payment(db, pending_order.id).paid_at
    second = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["data"]["message"] == "Already processed"
    assert notifier.notified == [pending_order.id]
    assert _payment(db, pending_order.id).paid_at == paid_at


def test_failure_after_success_is_ignored(client, db, pending_order):
    ok, ok_sig = signed_payload(transaction_obj(pending_order.id))
    client.post(WEBHOOK_URL, params={"hmac": ok_sig}, json=ok)

    failed, failed_sig = signed_payload(
        transaction_obj(pending_order.id, success=False, transaction_id=1, message="Declined")
    )
    r = client.post(WEBHOOK_URL, params={"hmac": failed_sig}, json=failed)
    assert r.status_code == 200

    assert _order(db, pending_order.id).status == OrderStatus.paid
    assert _payment(db, pending_order.id).status == PaymentStatus.completed


def test_failed_webhook_marks_order_failed(client, db, notifier, pending_order):
    payload, signature = signed_payload(
        transaction_obj(pending_order.id, success=False, message="Insufficient funds")
    )
    r = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    assert r.status_code == 200

    payment = _payment(db, pending_order.id)
    assert _order(db, pending_order.id).status == OrderStatus.failed
    assert payment.status == PaymentStatus.failed
    assert payment.failure_reason == "Insufficient funds"
    assert payment.webhook_received is True
    assert payment.paid_at is None
    assert notifier.notified == []


def test_failed_webhook_default_reason(client, db, pending_order):
    payload, signature = signed_payload(transaction_obj(pending_order.id, success=False))
    client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    assert _payment(db, pending_order.id).failure_reason == "Payment failed"


def test_invalid_signature_is_rejected_without_writes(client, db, notifier, pending_order):
    payload, signature = signed_payload(transaction_obj(pending_order.id))
    payload["obj"]["amount_cents"] = 1

    r = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    assert r.status_code == 401
    assert r.json()["code"] == 401301

    payment = _payment(db, pending_order.id)
    assert payment.webhook_received is False
    assert payment.status == PaymentStatus.pending
    assert _order(db, pending_order.id).status == OrderStatus.pending
    assert notifier.notified == []


def test_missing_signature_or_obj_is_rejected(client, pending_order):
    payload, _ = signed_payload(transaction_obj(pending_order.id))
    assert client.post(WEBHOOK_URL, json=payload).status_code == 401
    assert client.post(WEBHOOK_URL, params={"hmac": "abc"}, json={"type": "X"}).status_code == 401


def test_signature_from_body_is_accepted(client, db, pending_order):
    payload, signature = signed_payload(transaction_obj(pending_order.id))
    payload["hmac"] = signature
    r = client.post(WEBHOOK_URL, json=payload)
    assert r.status_code == 200
    assert _order(db, pending_order.id).status == OrderStatus.paid


def test_webhook_for_retried_payment_reference(client, db, pending_order):
    payload, signature = signed_payload(transaction_obj(f"{pending_order.id}-2"))
    r = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    assert r.status_code == 200
    assert _order(db, pending_order.id).status == OrderStatus.paid


@pytest.mark.parametrize("reference", ["999999999999", "", "not-an-id"])
def test_unknown_order_is_acknowledged(client, db, notifier, pending_order, reference):
    payload, signature = signed_payload(transaction_obj(reference))
    r = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    assert r.status_code == 200
    assert r.json()["code"] == 0
    assert _payment(db, pending_order.id).webhook_received is False
    assert notifier.notified == []


def test_conditional_gate_blocks_stale_read(db, notifier, pending_order, monkeypatch):
    # a concurrent delivery claimed the payment after this one read it
    stale = _payment(db, pending_order.id)
    assert stale.webhook_received is False
    real_claim = payment_reconciler._claim_webhook

    def claim_after_competitor(session, order_id):  # type: ignore[no-untyped-def]
        assert real_claim(session, order_id) is True
        session.commit()
        return real_claim(session, order_id)

    monkeypatch.setattr(payment_reconciler, "_claim_webhook", claim_after_competitor)
    obj = transaction_obj(pending_order.id)
    _, signature = signed_payload(obj)

    ack = handle_webhook(
        session=db, obj=obj, received_hmac=signature, secret=HMAC_SECRET, notifier=notifier
    )
    assert ack.message == "Already processed"
    assert ack.processed is False
    assert notifier.notified == []
    assert _order(db, pending_order.id).status == OrderStatus.pending


def test_handle_webhook_raises_on_bad_signature(db, notifier, pending_order):
    obj = transaction_obj(pending_order.id)
    with pytest.raises(InvalidSignatureError):
        handle_webhook(
            session=db, obj=obj, received_hmac="0" * 128, secret=HMAC_SECRET, notifier=notifier
        )


def test_notifier_failure_does_not_undo_payment(client, db, notifier, pending_order, monkeypatch):
    class BrokenRedis:
        def xadd(self, *args, **kwargs):  # type: ignore[no-untyped-def]
            raise ConnectionError("redis down")

    app.dependency_overrides[get_notifier] = lambda: ReceiptNotifier(lambda: BrokenRedis())
    payload, signature = signed_payload(transaction_obj(pending_order.id))
    r = client.post(WEBHOOK_URL, params={"hmac": signature}, json=payload)
    assert r.status_code == 200
    assert _order(db, pending_order.id).status == OrderStatus.paid


@pytest.mark.parametrize(
    ("source_type", "method"),
    [
        ("card", PaymentMethod.card),
        ("CARD", PaymentMethod.card),
        ("wallet", PaymentMethod.mobile_wallet),
        ("mobile_wallet", PaymentMethod.mobile_wallet),
        ("aman", PaymentMethod.cash),
        ("", PaymentMethod.cash),
        (None, PaymentMethod.cash),
    ],
)
def test_map_payment_method(source_type, method):
    assert map_payment_method(source_type) == method


@pytest.mark.parametrize("obj", [None, "TRANSACTION", ["not", "an", "object"]])
def test_handle_webhook_rejects_non_object_payload(db, notifier, obj):
    with pytest.raises(InvalidSignatureError):
        handle_webhook(
            session=db, obj=obj, received_hmac="0" * 128, secret=HMAC_SECRET, notifier=notifier
        )
    assert notifier.notified == []
