"""
Payment webhook reconciliation.

Applies a verified Paymob transaction callback to the matching Order and
Payment. Delivery is at-least-once; ``Payment.webhook_received`` is claimed
with a conditional UPDATE so that only one delivery ever applies, even when
two arrive concurrently.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import update
from sqlmodel import Session

from app import crud
from app.api.errors import InvalidSignatureError
from app.enums import OrderStatus, PaymentMethod, PaymentStatus
from app.integrations.paymob import parse_merchant_reference
from app.models import Order, Payment, utc_now
from app.services.pricing import to_minor_units
from app.services.webhook_verifier import verify_webhook_signature

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Payment failed"


class PaymentNotifier(Protocol):
    def notify_payment_succeeded(self, order_id: int) -> None: ...


@dataclass(frozen=True)
class WebhookAck:
    message: str
    order_id: int | None = None
    processed: bool = False


def map_payment_method(source_type: Any) -> PaymentMethod:
    kind = str(source_type or "").lower()
    if "card" in kind:
        return PaymentMethod.card
    if "wallet" in kind:
        return PaymentMethod.mobile_wallet
    return PaymentMethod.cash


def _failure_reason(obj: dict[str, Any]) -> str:
    data = obj.get("data")
    message = data.get("message") if isinstance(data, dict) else None
    if isinstance(message, str) and message:
        return message
    return DEFAULT_FAILURE_REASON


def _claim_webhook(session: Session, order_id: int) -> bool:
    """Flip ``webhook_received`` false -> true. False if another delivery already did."""
    stmt = (
        update(Payment)
        .where(Payment.order_id == order_id, Payment.webhook_received == False)  # noqa: E712
        .values(webhook_received=True)
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


def handle_webhook(
    *,
    session: Session,
    obj: dict[str, Any] | None,
    received_hmac: str | None,
    secret: str | None,
    notifier: PaymentNotifier,
    payload: dict[str, Any] | None = None,
) -> WebhookAck:
    """
    Reconcile one transaction callback.

    Args:
        obj: the transaction object (``payload["obj"]``)
        received_hmac: signature sent by the processor
        secret: shared HMAC secret
        notifier: receives ``notify_payment_succeeded`` after a PAID commit
        payload: full request body, stored on the payment for audit

    Raises:
        InvalidSignatureError: before any database access
    """
    if not isinstance(obj, dict) or not verify_webhook_signature(obj, received_hmac, secret):
        txn_id = obj.get("id") if isinstance(obj, dict) else None
        logger.error(f"Rejected webhook with invalid signature: transaction_id={txn_id}")
        raise InvalidSignatureError()

    remote_order = obj.get("order") if isinstance(obj.get("order"), dict) else {}
    order_id = parse_merchant_reference(remote_order.get("merchant_order_id"))
    if order_id is None:
        logger.warning(f"Webhook without merchant order id: transaction_id={obj.get('id')}")
        return WebhookAck(message="Order reference missing")

    order = session.get(Order, order_id)
    payment = crud.get_payment_for_order(session=session, order_id=order_id)
    if not order or not payment:
        logger.warning(f"Webhook for unknown order {order_id}")
        return WebhookAck(message="Order not found", order_id=order_id)

    if payment.webhook_received or not _claim_webhook(session, order_id):
        session.rollback()
        logger.warning(f"Webhook already processed for order {order_id}")
        return WebhookAck(message="Already processed", order_id=order_id)

    amount_cents = obj.get("amount_cents")
    if amount_cents is not None and amount_cents != to_minor_units(payment.amount):
        logger.warning(
            f"Webhook amount {amount_cents} differs from payment amount "
            f"{payment.amount} for order {order_id}"
        )

    now = utc_now()
    success = obj.get("success") is True
    try:
        payment.webhook_received = True
        payment.webhook_data = payload if payload is not None else {"obj": obj}
        payment.updated_at = now
        order.updated_at = now
        if success:
            source = obj.get("source_data") if isinstance(obj.get("source_data"), dict) else {}
            order.status = OrderStatus.paid
            order.paid_at = now
            payment.status = PaymentStatus.completed
            payment.external_transaction_id = str(obj.get("id"))
            payment.external_order_id = (
                str(remote_order["id"]) if remote_order.get("id") is not None else None
            )
            payment.payment_method = map_payment_method(source.get("type"))
            payment.paid_at = now
        else:
            order.status = OrderStatus.failed
            payment.status = PaymentStatus.failed
            payment.failure_reason = _failure_reason(obj)
        session.add(order)
        session.add(payment)
        session.commit()
    except Exception:
        session.rollback()
        raise

    if success:
        logger.info(f"Order {order_id} PAID, transaction {payment.external_transaction_id}")
        notifier.notify_payment_succeeded(order_id)
        return WebhookAck(message="Payment completed", order_id=order_id, processed=True)

    logger.info(f"Order {order_id} FAILED: {payment.failure_reason}")
    return WebhookAck(message="Payment failed", order_id=order_id, processed=True)
