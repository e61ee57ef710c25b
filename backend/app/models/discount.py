"""
Discount models.

``DiscountCode.usage_count`` is the global redemption counter and is only
ever changed by an atomic ``UPDATE ... SET usage_count = usage_count + 1``
inside the checkout transaction. Per-user limits are checked by counting
``DiscountUsage`` rows, never by a cached counter.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlmodel import Field, SQLModel

from app.core.snowflake import generate_id
from app.enums import DiscountType

from .base import utc_now


class DiscountCode(SQLModel, table=True):
    """
    Promotional code definition.

    Fields:
    - code: unique, stored upper-case
    - discount_type / discount_value: percentage or fixed amount
    - max_discount: cap for percentage codes (optional)
    - min_purchase: subtotal floor (optional)
    - usage_limit / usage_count: global redemption limit and running count
    - per_user_limit: redemptions allowed per user (optional)
    - starts_at / expires_at: optional active window
    - is_active: manual kill switch
    """
    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="ck_discount_codes_usage_within_limit",
        ),
        Index("ix_discount_codes_active_expires", "is_active", "expires_at"),
    )

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    code: str = Field(sa_column=Column(String(64), unique=True, index=True, nullable=False))
    description: str | None = Field(default=None, max_length=255)
    discount_type: DiscountType = Field(sa_column=Column(String(16), nullable=False))
    discount_value: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    min_purchase: Decimal | None = Field(
        default=None, sa_column=Column(Numeric(10, 2), nullable=True)
    )
    max_discount: Decimal | None = Field(
        default=None, sa_column=Column(Numeric(10, 2), nullable=True)
    )
    usage_limit: int | None = Field(default=None)
    usage_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )
    per_user_limit: int | None = Field(default=None)
    is_active: bool = Field(default=True)
    starts_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    expires_at: datetime | None = Field(
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


class DiscountUsage(SQLModel, table=True):
    """Append-only redemption record, written once per discounted order."""
    __tablename__ = "discount_usages"
    __table_args__ = (
        Index("ix_discount_usages_code_user", "discount_code_id", "user_id"),
    )

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    discount_code_id: int = Field(
        sa_column=Column(
            BigInteger,
            ForeignKey("discount_codes.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    user_id: int = Field(
        sa_column=Column(
            BigInteger, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    order_id: int | None = Field(
        default=None,
        sa_column=Column(
            BigInteger,
            ForeignKey("orders.id", ondelete="SET NULL"),
            unique=True,
            nullable=True,
        ),
    )
    used_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
