"""
Paymob Accept integration.

Payment initialization is three POSTs, each of which may fail on its own:
- auth: POST /auth/tokens (api_key -> token)
- order registration: POST /ecommerce/orders (-> remote order id)
- payment key: POST /acceptance/payment_keys (-> payment token)

The payment URL is then built locally from the iframe id and the payment
token. Any failure raises ``PaymentInitializationError``; a half-created
remote order is left to the processor.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from app.api.errors import PaymentInitializationError
from app.core.config import settings
from app.services.pricing import to_minor_units

logger = logging.getLogger(__name__)

_AUTH_PATH = "/auth/tokens"
_ORDER_PATH = "/ecommerce/orders"
_PAYMENT_KEY_PATH = "/acceptance/payment_keys"
_IFRAME_PATH = "/acceptance/iframes/{iframe_id}"

# Paymob requires every billing field; digital goods have no address.
_BILLING_DEFAULTS = {
    "phone_number": "+20000000000",
    "country": "EG",
    "city": "Cairo",
    "street": "NA",
    "building": "NA",
    "floor": "NA",
    "apartment": "NA",
}


@dataclass(frozen=True)
class PaymentSession:
    """Result of a successful initialization."""
    payment_url: str
    remote_order_id: int
    merchant_reference: str


def split_name(full_name: str | None) -> tuple[str, str]:
    """``"Ada King Lovelace"`` -> ``("Ada", "King Lovelace")``; empty -> ``("Customer", "")``."""
    parts = (full_name or "").split()
    if not parts:
        return "Customer", ""
    return parts[0], " ".join(parts[1:])


def build_billing_data(email: str, full_name: str | None) -> dict[str, str]:
    first_name, last_name = split_name(full_name)
    return {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        **_BILLING_DEFAULTS,
    }


def merchant_reference(order_id: int, attempt: int = 1) -> str:
    """
    Merchant order id sent to Paymob.

    Paymob rejects a reused merchant order id, so attempts after the first
    carry a ``-{attempt}`` suffix.
    """
    if attempt <= 1:
        return str(order_id)
    return f"{order_id}-{attempt}"


def parse_merchant_reference(value: Any) -> int | None:
    """Recover our order id from ``"123"`` or ``"123-2"``. None if malformed."""
    if value is None:
        return None
    head = str(value).strip().split("-", 1)[0]
    if not head.isdigit():
        return None
    return int(head)


class PaymobClient:
    """Paymob Accept API client."""

    def __init__(self) -> None:
        self._base_url = settings.PAYMOB_BASE_URL.rstrip("/")
        self._api_key = settings.PAYMOB_API_KEY
        self._integration_id = settings.PAYMOB_INTEGRATION_ID
        self._iframe_id = settings.PAYMOB_IFRAME_ID
        self._currency = settings.PAYMOB_CURRENCY
        self._timeout = settings.PAYMOB_TIMEOUT_SECONDS

    def _post(self, path: str, payload: dict[str, Any], *, step: str) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(timeout=self._timeout) as client:
                r = client.post(url, json=payload)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Paymob {step} failed: {e.response.status_code} {e.response.text}")
            raise PaymentInitializationError()
        except httpx.HTTPError as e:
            logger.error(f"Paymob {step} failed: {e}")
            raise PaymentInitializationError()
        except ValueError as e:
            logger.error(f"Paymob {step} returned invalid JSON: {e}")
            raise PaymentInitializationError()

        if not isinstance(data, dict):
            logger.error(f"Paymob {step} returned unexpected body: {data!r}")
            raise PaymentInitializationError()
        return data

    def authenticate(self) -> str:
        if not self._api_key:
            logger.error("PAYMOB_API_KEY not configured")
            raise PaymentInitializationError()
        data = self._post(_AUTH_PATH, {"api_key": self._api_key}, step="auth")
        token = data.get("token")
        if not token:
            logger.error("Paymob auth response has no token")
            raise PaymentInitializationError()
        return str(token)

    def register_order(self, *, auth_token: str, amount_cents: int, reference: str) -> int:
        payload = {
            "auth_token": auth_token,
            "delivery_needed": "false",
            "amount_cents": amount_cents,
            "currency": self._currency,
            "merchant_order_id": reference,
            "items": [],
        }
        data = self._post(_ORDER_PATH, payload, step="order registration")
        remote_id = data.get("id")
        if remote_id is None:
            logger.error("Paymob order registration response has no id")
            raise PaymentInitializationError()
        return int(remote_id)

    def mint_payment_key(
        self,
        *,
        auth_token: str,
        remote_order_id: int,
        amount_cents: int,
        billing_data: dict[str, str],
    ) -> str:
        if self._integration_id is None:
            logger.error("PAYMOB_INTEGRATION_ID not configured")
            raise PaymentInitializationError()
        payload = {
            "auth_token": auth_token,
            "amount_cents": amount_cents,
            "expiration": settings.PAYMOB_PAYMENT_KEY_EXPIRATION,
            "order_id": remote_order_id,
            "billing_data": billing_data,
            "currency": self._currency,
            "integration_id": self._integration_id,
        }
        data = self._post(_PAYMENT_KEY_PATH, payload, step="payment key")
        token = data.get("token")
        if not token:
            logger.error("Paymob payment key response has no token")
            raise PaymentInitializationError()
        return str(token)

    def payment_url(self, payment_token: str) -> str:
        path = _IFRAME_PATH.format(iframe_id=self._iframe_id)
        return f"{self._base_url}{path}?payment_token={payment_token}"

    def create_payment(
        self,
        *,
        order_id: int,
        amount: Decimal,
        email: str,
        full_name: str | None,
        attempt: int = 1,
    ) -> PaymentSession:
        """
        Run the full handshake and return the hosted payment URL.

        Raises:
            PaymentInitializationError: on any failed step or missing setting
        """
        if self._iframe_id is None:
            logger.error("PAYMOB_IFRAME_ID not configured")
            raise PaymentInitializationError()

        amount_cents = to_minor_units(amount)
        reference = merchant_reference(order_id, attempt)
        token = self.authenticate()
        remote_order_id = self.register_order(
            auth_token=token, amount_cents=amount_cents, reference=reference
        )
        payment_token = self.mint_payment_key(
            auth_token=token,
            remote_order_id=remote_order_id,
            amount_cents=amount_cents,
            billing_data=build_billing_data(email, full_name),
        )
        logger.info(
            f"Paymob payment key minted: order_id={order_id} reference={reference} "
            f"remote_order_id={remote_order_id}"
        )
        return PaymentSession(
            payment_url=self.payment_url(payment_token),
            remote_order_id=remote_order_id,
            merchant_reference=reference,
        )
