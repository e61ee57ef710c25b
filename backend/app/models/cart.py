"""
Cart models.

One cart per user (``carts.user_id`` is unique). The cart row is created on
first add and survives checkout; only its items are deleted.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel

from app.core.snowflake import generate_id

from .base import utc_now


class Cart(SQLModel, table=True):
    __tablename__ = "carts"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    user_id: int = Field(
        sa_column=Column(
            BigInteger,
            ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
            unique=True,
        )
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class CartItem(SQLModel, table=True):
    """
    A product in a cart with its price locked at add time.

    ``price_at_add`` is what checkout charges, even if the product price
    changes afterwards. A product appears at most once per cart.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
    )

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    cart_id: int = Field(
        sa_column=Column(
            BigInteger, ForeignKey("carts.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    product_id: int = Field(
        sa_column=Column(
            BigInteger, ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    price_at_add: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
