"""
Money helpers.

Amounts are ``Decimal`` end to end and rendered with two places. The
processor only ever receives integer minor units.
"""
from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from app.api.errors import EmptyCartError
from app.models import CartItem

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_subtotal(items: Iterable[CartItem]) -> Decimal:
    """
    Sum the locked ``price_at_add`` of every cart item.

    Live product prices are never consulted.

    Raises:
        EmptyCartError: when there are no items
    """
    items = list(items)
    if not items:
        raise EmptyCartError()
    return quantize(sum((Decimal(i.price_at_add) for i in items), ZERO))


def to_minor_units(amount: Decimal) -> int:
    """150.00 -> 15000, rounding half up at the third decimal."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
