"""
Payment model.

One payment per order. ``webhook_received`` is the reconciliation
idempotency gate: it goes from false to true exactly once, through a
conditional UPDATE, and nothing resets it.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, Numeric, String, Text
from sqlmodel import Field, SQLModel

from app.core.snowflake import generate_id
from app.enums import PaymentMethod, PaymentStatus

from .base import utc_now


class Payment(SQLModel, table=True):
    """
    Fields:
    - amount: always equals the order total
    - external_transaction_id / external_order_id: processor ids, set by the webhook
    - payment_method: derived from the processor's source type
    - payment_attempts: number of payment URLs minted for this order
    - webhook_received / webhook_data: idempotency gate and raw payload (audit)
    - failure_reason: processor message for failed payments
    """
    __tablename__ = "payments"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    order_id: int = Field(
        sa_column=Column(
            BigInteger,
            ForeignKey("orders.id", ondelete="CASCADE"),
            unique=True,
            index=True,
            nullable=False,
        )
    )
    amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    currency: str = Field(default="EGP", max_length=8)
    status: PaymentStatus = Field(
        default=PaymentStatus.pending,
        sa_column=Column(String(16), index=True, nullable=False),
    )
    payment_method: PaymentMethod | None = Field(
        default=None, sa_column=Column(String(16), nullable=True)
    )
    external_transaction_id: str | None = Field(
        default=None,
        sa_column=Column(String(64), unique=True, index=True, nullable=True),
    )
    external_order_id: str | None = Field(default=None, max_length=64)
    payment_attempts: int = Field(default=0)

    webhook_received: bool = Field(default=False)
    webhook_data: dict | None = Field(default=None, sa_column=Column(JSON))
    failure_reason: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    paid_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
