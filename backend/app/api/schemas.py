"""
API request/response schemas.

These are plain Pydantic models for the wire format, not tables. Every
endpoint answers with ``ApiEnvelope``; the models below go in its ``data``.
Money is ``Decimal`` and serializes as a string with two places.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, model_validator

from app.enums import DiscountType, OrderStatus, PaymentMethod, PaymentStatus

# ============================================================
# Common
# ============================================================


class Message(BaseModel):
    message: str


class TokenPayload(BaseModel):
    """JWT payload; ``sub`` holds the user id."""
    sub: str | None = None


class ApiEnvelope(BaseModel):
    """
    Standard response body.

    ``code`` is 0 on success; errors carry the six-digit ``AppError`` code.

        {"code": 0, "message": "success", "data": {...}}
        {"code": 400301, "message": "Your cart is empty", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# Cart
# ============================================================


class CartItemAddRequest(BaseModel):
    product_id: int


class CartItemPublic(BaseModel):
    product_id: int
    title: str | None = None
    author_name: str | None = None
    price_at_add: Decimal
    current_price: Decimal | None = None
    added_at: datetime


class DiscountPreviewRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)


class DiscountPreviewData(BaseModel):
    """Outcome of applying a code to the current cart; nothing is recorded."""
    valid: bool
    message: str
    code: str
    discount_amount: Decimal
    subtotal: Decimal
    total: Decimal


class CartData(BaseModel):
    """Cart contents. ``applied_discount`` is re-evaluated on every read."""
    items: list[CartItemPublic]
    item_count: int
    subtotal: Decimal
    applied_discount: DiscountPreviewData | None = None


# ============================================================
# Checkout / orders
# ============================================================


class CheckoutRequest(BaseModel):
    discount_code: str | None = Field(default=None, max_length=64)


class OrderItemPublic(BaseModel):
    product_id: int
    title: str
    author_name: str
    price: Decimal
    pdf_file: str


class PaymentPublic(BaseModel):
    status: PaymentStatus
    amount: Decimal
    currency: str
    payment_method: PaymentMethod | None = None
    payment_attempts: int
    paid_at: datetime | None = None
    failure_reason: str | None = None


class OrderPublic(BaseModel):
    id: int
    status: OrderStatus
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    discount_code_used: str | None = None
    created_at: datetime
    paid_at: datetime | None = None
    items: list[OrderItemPublic] = []
    payment: PaymentPublic | None = None


class CheckoutData(BaseModel):
    order: OrderPublic
    payment_url: str


class OrdersData(BaseModel):
    data: list[OrderPublic]
    count: int


# ============================================================
# Discount administration
# ============================================================


class DiscountCodeCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=255)
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    min_purchase: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    max_discount: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int | None = Field(default=None, ge=1)
    is_active: bool = True
    starts_at: datetime | None = None
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _validate_window(self) -> DiscountCodeCreate:
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self


class DiscountCodeUpdate(BaseModel):
    """Partial update; omitted fields are left as they are."""
    code: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = Field(default=None, max_length=255)
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    min_purchase: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    max_discount: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int | None = Field(default=None, ge=1)
    is_active: bool | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None


class DiscountUsagePublic(BaseModel):
    user_id: int
    order_id: int | None = None
    used_at: datetime


class DiscountCodePublic(BaseModel):
    id: int
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal
    min_purchase: Decimal | None = None
    max_discount: Decimal | None = None
    usage_limit: int | None = None
    usage_count: int
    per_user_limit: int | None = None
    is_active: bool
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime
    usages: list[DiscountUsagePublic] | None = None


class DiscountCodesData(BaseModel):
    data: list[DiscountCodePublic]
    count: int


# ============================================================
# Webhook
# ============================================================


class WebhookAckData(BaseModel):
    received: bool = True
    message: str
    order_id: int | None = None
