"""
Paymob transaction webhook signature.

Paymob signs a fixed, ordered concatenation of fields from the transaction
``obj`` with HMAC-SHA512. The order below is Paymob's contract.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

logger = logging.getLogger(__name__)

SIGNED_FIELDS: tuple[str, ...] = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order.id",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
)


def _lookup(obj: dict[str, Any], dotted: str) -> Any:
    value: Any = obj
    for key in dotted.split("."):
        if not isinstance(value, dict) or key not in value:
            raise KeyError(dotted)
        value = value[key]
    return value


def _stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_signature_string(obj: dict[str, Any]) -> str:
    """
    Raises:
        KeyError: when a signed field is missing
    """
    return "".join(_stringify(_lookup(obj, field)) for field in SIGNED_FIELDS)


def compute_hmac(obj: dict[str, Any], secret: str) -> str:
    message = build_signature_string(obj)
    return hmac.new(secret.encode(), message.encode(), hashlib.sha512).hexdigest()


def verify_webhook_signature(
    obj: dict[str, Any] | None, received: str | None, secret: str | None
) -> bool:
    """
    Never raises: a missing secret, signature or field is a failed check.
    """
    if not secret:
        logger.error("PAYMOB_HMAC_SECRET not configured, rejecting webhook")
        return False
    if not received or not isinstance(obj, dict):
        return False
    try:
        expected = compute_hmac(obj, secret)
        return hmac.compare_digest(received.lower(), expected)
    except Exception as e:
        logger.warning(f"Failed to verify webhook signature: {e}")
        return False
