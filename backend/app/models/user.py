"""
User model.

Accounts are created by the surrounding auth system; checkout only reads the
buyer's contact details and the admin flag.
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlmodel import Field, SQLModel

from app.core.snowflake import generate_id

from .base import utc_now


class User(SQLModel, table=True):
    """
    Fields:
    - email: unique, used as the billing e-mail sent to the processor
    - first_name / last_name: joined into the billing name
    - is_admin: gates discount administration
    """
    __tablename__ = "users"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
    )
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    is_admin: bool = Field(default=False)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
