"""
Discount evaluation.

``validate_discount`` only reads. Recording a redemption (usage row plus
counter increment) belongs to the checkout transaction.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlmodel import Session

from app import crud
from app.api.errors import DiscountRejectedError
from app.enums import DiscountRejectionReason, DiscountType
from app.models import DiscountCode, as_utc, utc_now
from app.services.pricing import quantize

R = DiscountRejectionReason


def validate_discount(
    *,
    session: Session,
    code: str,
    user_id: int,
    subtotal: Decimal,
    now: datetime | None = None,
) -> DiscountCode:
    """
    Check a code against the user's subtotal and usage history.

    Checks run in order: exists, active, started, not expired, global usage
    limit, per-user limit, minimum purchase.

    Raises:
        DiscountRejectedError: with the first failing reason
    """
    now = now or utc_now()
    discount = crud.get_discount_by_code(session=session, code=code)
    if not discount:
        raise DiscountRejectedError(R.not_found, "Invalid discount code")
    if not discount.is_active:
        raise DiscountRejectedError(R.inactive, "This discount code is no longer active")

    starts_at = as_utc(discount.starts_at)
    if starts_at and now < starts_at:
        raise DiscountRejectedError(R.not_started, "This discount code is not yet valid")
    expires_at = as_utc(discount.expires_at)
    if expires_at and now > expires_at:
        raise DiscountRejectedError(R.expired, "This discount code has expired")

    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        raise DiscountRejectedError(
            R.usage_limit_reached, "This discount code has reached its usage limit"
        )

    if discount.per_user_limit is not None:
        used = crud.count_user_usages(
            session=session, discount_code_id=discount.id, user_id=user_id
        )
        if used >= discount.per_user_limit:
            raise DiscountRejectedError(
                R.per_user_limit_reached,
                "You have already used this discount code the maximum number of times",
            )

    if discount.min_purchase is not None and subtotal < Decimal(discount.min_purchase):
        raise DiscountRejectedError(
            R.min_purchase_not_met,
            f"Minimum purchase of {quantize(discount.min_purchase)} required for this code",
        )

    return discount


def calculate_discount(
    subtotal: Decimal,
    discount_type: DiscountType,
    value: Decimal,
    max_discount: Decimal | None = None,
) -> Decimal:
    """Discount amount for a subtotal. Never more than the subtotal itself."""
    subtotal = Decimal(subtotal)
    if DiscountType(discount_type) == DiscountType.percentage:
        amount = subtotal * Decimal(value) / Decimal(100)
        if max_discount is not None:
            amount = min(amount, Decimal(max_discount))
    else:
        amount = Decimal(value)
    return quantize(min(amount, subtotal))


def discount_amount_for(discount: DiscountCode, subtotal: Decimal) -> Decimal:
    return calculate_discount(
        subtotal, discount.discount_type, discount.discount_value, discount.max_discount
    )
