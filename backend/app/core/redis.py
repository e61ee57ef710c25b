"""
Redis connection.

Redis only carries the receipt job stream (``settings.RECEIPT_STREAM``); a
single client is cached for the lifetime of the process.
"""
from __future__ import annotations

from functools import lru_cache

import redis

from app.core.config import settings


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    """
    Return the process-wide Redis client.

    The client connects lazily on first command. Socket timeouts are short
    because every caller treats Redis as best-effort.
    """
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        decode_responses=True,
    )
