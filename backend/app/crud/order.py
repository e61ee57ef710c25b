"""Order and payment CRUD"""
from sqlalchemy import func, update
from sqlmodel import Session, col, select

from app.enums import PaymentStatus
from app.models import Order, OrderItem, Payment, utc_now


def get_order_for_user(*, session: Session, order_id: int, user_id: int) -> Order | None:
    """Return the order only if it belongs to the user"""
    stmt = select(Order).where(Order.id == order_id, Order.user_id == user_id)
    return session.exec(stmt).first()


def list_orders_for_user(
    *, session: Session, user_id: int, skip: int = 0, limit: int = 20
) -> tuple[list[Order], int]:
    total = session.exec(
        select(func.count()).select_from(Order).where(Order.user_id == user_id)
    ).one()
    stmt = (
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(col(Order.created_at).desc(), col(Order.id).desc())
        .offset(skip)
        .limit(limit)
    )
    return list(session.exec(stmt).all()), total


def get_order_items(*, session: Session, order_id: int) -> list[OrderItem]:
    stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(col(OrderItem.id))
    return list(session.exec(stmt).all())


def get_payment_for_order(
    *, session: Session, order_id: int, for_update: bool = False
) -> Payment | None:
    stmt = select(Payment).where(Payment.order_id == order_id)
    if for_update:
        stmt = stmt.with_for_update()
    return session.exec(stmt).first()


def claim_payment_attempt(*, session: Session, payment_id: int) -> int | None:
    """
    Atomically count one more payment URL attempt and return the new count.

    The row is only updated while the payment is still PENDING and no webhook
    has arrived, so concurrent retries each get a distinct attempt number.
    Returns None when the payment is no longer awaiting payment. Does not commit.
    """
    stmt = (
        update(Payment)
        .where(
            Payment.id == payment_id,
            Payment.webhook_received == False,  # noqa: E712
            Payment.status == PaymentStatus.pending,
        )
        .values(payment_attempts=Payment.payment_attempts + 1, updated_at=utc_now())
    )
    result = session.exec(stmt)  # type: ignore[call-overload]
    if result.rowcount != 1:
        return None
    return session.exec(select(Payment.payment_attempts).where(Payment.id == payment_id)).one()
