"""
Snowflake primary keys.

Every table uses a 64-bit id minted in process, so an Order id is known
before the row is flushed and can be sent to the payment processor as the
merchant reference.

Layout: 41 bits of milliseconds since ``_EPOCH_MS`` | 10 bits node id |
12 bits per-millisecond sequence.
"""
from __future__ import annotations

import threading
import time

from app.core.config import settings

_EPOCH_MS = 1704067200000  # 2024-01-01T00:00:00Z
_MAX_BACKWARD_DRIFT_MS = 5000


class Snowflake:
    def __init__(self, *, node_id: int) -> None:
        if not (0 <= node_id <= 1023):
            raise ValueError("SNOWFLAKE_NODE_ID must be in [0, 1023]")
        self._node_id = node_id
        self._lock = threading.Lock()
        self._last_ts = -1
        self._seq = 0

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    @classmethod
    def _wait_until(cls, target_ms: int) -> int:
        ts = cls._now_ms()
        while ts < target_ms:
            time.sleep(0.001)
            ts = cls._now_ms()
        return ts

    def next_id(self) -> int:
        """
        Return the next id. Thread safe.

        Raises:
            RuntimeError: when the clock went backwards by more than 5 seconds
        """
        with self._lock:
            ts = self._now_ms()
            if ts < self._last_ts:
                drift = self._last_ts - ts
                if drift > _MAX_BACKWARD_DRIFT_MS:
                    raise RuntimeError(
                        f"Clock moved backwards by {drift}ms. "
                        "Refusing to generate IDs to prevent duplicates."
                    )
                ts = self._wait_until(self._last_ts)

            if ts == self._last_ts:
                self._seq = (self._seq + 1) & 0xFFF
                if self._seq == 0:
                    # sequence exhausted for this millisecond
                    ts = self._wait_until(self._last_ts + 1)
            else:
                self._seq = 0

            self._last_ts = ts
            return ((ts - _EPOCH_MS) << 22) | (self._node_id << 12) | self._seq


_GENERATOR: Snowflake | None = None


def generate_id() -> int:
    global _GENERATOR
    if _GENERATOR is None:
        _GENERATOR = Snowflake(node_id=settings.SNOWFLAKE_NODE_ID)
    return _GENERATOR.next_id()
