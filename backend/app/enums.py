"""
Enumerations shared by models, schemas and services.

All enums subclass ``str`` so they are stored as plain strings and serialize
to JSON without conversion.
"""
from enum import Enum


class OrderStatus(str, Enum):
    """
    Order lifecycle.

    Orders are created PENDING by checkout. Only webhook reconciliation moves
    them to PAID or FAILED.
    """
    pending = "PENDING"
    paid = "PAID"
    failed = "FAILED"
    refunded = "REFUNDED"
    cancelled = "CANCELLED"


class PaymentStatus(str, Enum):
    pending = "PENDING"
    completed = "COMPLETED"
    failed = "FAILED"
    refunded = "REFUNDED"


class PaymentMethod(str, Enum):
    """Payment method derived from the processor's ``source_data.type``."""
    card = "CARD"
    mobile_wallet = "MOBILE_WALLET"
    cash = "CASH"


class DiscountType(str, Enum):
    """
    How ``DiscountCode.discount_value`` is applied:
    - percentage: value is a percent of the subtotal (optionally capped)
    - fixed_amount: value is a flat amount off
    """
    percentage = "PERCENTAGE"
    fixed_amount = "FIXED_AMOUNT"


class DiscountRejectionReason(str, Enum):
    """Why a discount code cannot be applied, in evaluation order."""
    not_found = "not_found"
    inactive = "inactive"
    not_started = "not_started"
    expired = "expired"
    usage_limit_reached = "usage_limit_reached"
    per_user_limit_reached = "per_user_limit_reached"
    min_purchase_not_met = "min_purchase_not_met"
