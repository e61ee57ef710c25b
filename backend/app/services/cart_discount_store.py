"""
Discount code applied to a cart.

The code is kept in Redis under ``cart:discount:{user_id}`` and re-validated
on every read and at checkout; nothing is redeemed until an order exists.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from app.core.config import settings
from app.core.redis import get_redis

logger = logging.getLogger(__name__)


def _key(user_id: int) -> str:
    return f"cart:discount:{user_id}"


class AppliedDiscountStore:
    def __init__(self, redis_factory: Callable[[], Any] = get_redis) -> None:
        self._redis_factory = redis_factory

    def get(self, user_id: int) -> str | None:
        try:
            return self._redis_factory().get(_key(user_id))
        except Exception as e:
            logger.error(f"Failed to read applied discount for user {user_id}: {e}")
            return None

    def save(self, user_id: int, code: str) -> bool:
        try:
            self._redis_factory().set(
                _key(user_id), code, ex=settings.CART_DISCOUNT_TTL_SECONDS
            )
        except Exception as e:
            logger.error(f"Failed to store applied discount for user {user_id}: {e}")
            return False
        return True

    def clear(self, user_id: int) -> None:
        try:
            self._redis_factory().delete(_key(user_id))
        except Exception as e:
            logger.warning(f"Failed to clear applied discount for user {user_id}: {e}")
