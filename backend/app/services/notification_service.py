"""Receipt notification. Enqueues a job for the email worker."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from app.core.config import settings
from app.core.redis import get_redis

logger = logging.getLogger(__name__)


class ReceiptNotifier:
    """
    Best-effort XADD onto ``settings.RECEIPT_STREAM``.

    A failure is logged and swallowed: the order is already paid.
    """

    def __init__(self, redis_factory: Callable[[], Any] = get_redis) -> None:
        self._redis_factory = redis_factory

    def notify_payment_succeeded(self, order_id: int) -> None:
        try:
            self._redis_factory().xadd(settings.RECEIPT_STREAM, {"order_id": str(order_id)})
        except Exception as e:
            logger.warning(f"Failed to enqueue receipt for order {order_id}: {e}")
