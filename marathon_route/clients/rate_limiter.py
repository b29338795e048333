"""Fixed-delay rate limiting for the sequential tile walk."""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable

__all__ = ["RateLimiter"]


class RateLimiter:
    """Keep at least ``delay_seconds`` between the end of one tile and the next request."""

    def __init__(
        self,
        delay_seconds: float,
        jitter_range: tuple[float, float] = (0.0, 0.0),
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self._lock = threading.Lock()
        self._delay = delay_seconds
        self._jitter_range = jitter_range
        self._clock = clock
        self._sleep = sleep
        self._next_allowed: float = 0.0
        self._waits = 0

    @classmethod
    def from_millis(cls, delay_ms: int, jitter_ms: int = 0) -> "RateLimiter":
        """Build a limiter from millisecond settings; jitter adds 0..jitter_ms."""
        jitter = max(0, jitter_ms) / 1000.0
        return cls(max(0, delay_ms) / 1000.0, (0.0, jitter))

    def before_request(self) -> None:
        with self._lock:
            wait_for = max(0.0, self._next_allowed - self._clock())
            if wait_for > 0:
                self._waits += 1
        if wait_for > 0:
            logging.debug("Rate limit: sleeping %.3fs before next tile", wait_for)
            self._sleep(wait_for)

    def after_response(self) -> None:
        lo, hi = self._jitter_range
        jitter = random.uniform(lo, hi) if hi > 0 else 0.0  # nosec B311
        with self._lock:
            self._next_allowed = self._clock() + self._delay + jitter

    def snapshot(self) -> dict[str, float | int]:
        """Return current limiter stats (used by tests and diagnostics)."""

        with self._lock:
            return {
                "delay_seconds": self._delay,
                "jitter_seconds": self._jitter_range[1],
                "next_allowed": self._next_allowed,
                "waits": self._waits,
            }
