"""
Application exceptions.

Every business error derives from ``AppError``; ``app.main`` renders it as
the standard envelope ``{"code", "message", "data"}``. Codes are six digits:
HTTP status * 1000 + a sequence number.

Families:
- validation (400): the request can never succeed as sent, nothing was written
- external service (502): the payment processor failed; see
  ``OrderCreatedPaymentInitFailedError`` for the post-commit case
- security (401): webhook signature mismatch, nothing was read or written
"""
from __future__ import annotations

from typing import Any

from app.enums import DiscountRejectionReason


class AppError(Exception):
    """
    Base application error.

    Args:
        code: business error code
        message: human-readable message shown to the client
        status_code: HTTP status (default 400)
        data: optional payload returned in the envelope's ``data`` field
    """

    def __init__(
        self,
        *,
        code: int,
        message: str,
        status_code: int = 400,
        data: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.data = data


class EmptyCartError(AppError):
    def __init__(self) -> None:
        super().__init__(code=400301, message="Your cart is empty", status_code=400)


class InvalidOrderTotalError(AppError):
    def __init__(self) -> None:
        super().__init__(
            code=400302,
            message="Order total cannot be zero or negative",
            status_code=400,
        )


_DISCOUNT_CODES: dict[DiscountRejectionReason, int] = {
    DiscountRejectionReason.not_found: 400311,
    DiscountRejectionReason.inactive: 400312,
    DiscountRejectionReason.not_started: 400313,
    DiscountRejectionReason.expired: 400314,
    DiscountRejectionReason.usage_limit_reached: 400315,
    DiscountRejectionReason.per_user_limit_reached: 400316,
    DiscountRejectionReason.min_purchase_not_met: 400317,
}


class DiscountRejectedError(AppError):
    """A discount code failed one of the eligibility checks."""

    def __init__(self, reason: DiscountRejectionReason, message: str) -> None:
        super().__init__(code=_DISCOUNT_CODES[reason], message=message, status_code=400)
        self.reason = reason


class PaymentInitializationError(AppError):
    """Any step of the processor handshake failed (auth, order, payment key)."""

    def __init__(self, message: str = "Failed to initialize payment") -> None:
        super().__init__(code=502301, message=message, status_code=502)


class OrderCreatedPaymentInitFailedError(AppError):
    """
    The order is committed but no payment URL could be minted.

    The client should call ``POST /orders/{order_id}/payment`` rather than
    repeating checkout.
    """

    def __init__(self, order_id: int) -> None:
        super().__init__(
            code=502302,
            message="Order created but payment initialization failed, retry payment",
            status_code=502,
            data={"order_id": order_id},
        )
        self.order_id = order_id


class InvalidSignatureError(AppError):
    def __init__(self) -> None:
        super().__init__(code=401301, message="Invalid signature", status_code=401)


class OrderNotFoundError(AppError):
    def __init__(self) -> None:
        super().__init__(code=404301, message="Order not found", status_code=404)


def payment_not_retryable() -> AppError:
    """Payment URL retry on an order that is no longer awaiting payment."""
    return AppError(
        code=409301,
        message="Order is not awaiting payment",
        status_code=409,
    )
