"""
Product model (read-only here).

Catalog management lives elsewhere. The cart reads the live price when an
item is added and the order copies title/author/file reference at checkout.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Column, DateTime, Numeric, String
from sqlmodel import Field, SQLModel

from app.core.snowflake import generate_id

from .base import utc_now


class Product(SQLModel, table=True):
    __tablename__ = "products"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    title: str = Field(max_length=255)
    author_name: str = Field(max_length=255)
    price: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    pdf_file: str = Field(sa_column=Column(String(512), nullable=False))
    is_published: bool = Field(default=False)
    deleted_at: datetime | None = Field(
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
