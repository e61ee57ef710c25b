"""
Payment processor callbacks.

Paymob POSTs the transaction as ``{"type": "TRANSACTION", "obj": {...}}``
and sends the signature as the ``hmac`` query parameter. Anything with a
valid signature is acknowledged with 200, including unknown orders and
replays; a bad signature gets 401.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from app.api.deps import NotifierDep, SessionDep
from app.api.schemas import ApiEnvelope, WebhookAckData
from app.core.config import settings
from app.services.payment_reconciler import handle_webhook

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/paymob", response_model=ApiEnvelope)
def paymob_webhook(
    session: SessionDep,
    notifier: NotifierDep,
    payload: dict[str, Any],
    hmac: str | None = Query(default=None),
) -> ApiEnvelope:
    obj = payload.get("obj")
    received = hmac or payload.get("hmac")
    ack = handle_webhook(
        session=session,
        obj=obj,
        received_hmac=str(received) if received is not None else None,
        secret=settings.PAYMOB_HMAC_SECRET,
        notifier=notifier,
        payload=payload,
    )
    return ApiEnvelope(data=WebhookAckData(message=ack.message, order_id=ack.order_id))
