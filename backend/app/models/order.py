"""
Order models.

An order is an immutable snapshot of a checkout: money columns are written
once and never recomputed. Order items copy product data so that later
catalog edits or deletions cannot change what was bought.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
)
from sqlmodel import Field, SQLModel

from app.core.snowflake import generate_id
from app.enums import OrderStatus

from .base import utc_now


class Order(SQLModel, table=True):
    """
    Fields:
    - subtotal: sum of the cart's locked prices
    - discount_amount: 0 when no code was applied
    - total: subtotal - discount_amount, strictly positive
    - discount_code_id / discount_code_used: the applied code (nullable)
    - status: PENDING until the payment webhook arrives
    - paid_at: set on the PAID transition
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total > 0", name="ck_orders_total_positive"),
    )

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    user_id: int = Field(
        sa_column=Column(
            BigInteger, ForeignKey("users.id", ondelete="RESTRICT"), index=True, nullable=False
        )
    )

    subtotal: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    discount_amount: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=Column(Numeric(10, 2), nullable=False),
    )
    total: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    discount_code_id: int | None = Field(
        default=None,
        sa_column=Column(
            BigInteger,
            ForeignKey("discount_codes.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    discount_code_used: str | None = Field(default=None, max_length=64)

    status: OrderStatus = Field(
        default=OrderStatus.pending,
        sa_column=Column(String(16), index=True, nullable=False),
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )
    paid_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    order_id: int = Field(
        sa_column=Column(
            BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    # No FK: the snapshot must outlive the product row.
    product_id: int = Field(sa_column=Column(BigInteger, index=True, nullable=False))
    title: str = Field(max_length=255)
    author_name: str = Field(max_length=255)
    price: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    pdf_file: str = Field(sa_column=Column(String(512), nullable=False))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
