"""Thread-safe in-memory fixed-window rate limiter.

Design decisions
────────────────
• **Fixed window per key**: the first request from a key opens a window of
  ``window_seconds``; up to ``limit`` requests are allowed inside it.
• **OrderedDict** keyed by client so the oldest windows can be evicted once
  ``max_keys`` is reached (bounded memory under many distinct IPs).
• **threading.Lock** for thread safety (FastAPI serves concurrent requests
  on the same process).
• Purely process-local.  Routes depend only on ``check(key)``, so a shared
  store can replace this class behind the same method.

>>> limiter = FixedWindowRateLimiter(limit=20, window_seconds=60)
>>> limiter.check("203.0.113.7").allowed
True
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 10_000


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: int = 0  # seconds until the window resets; 0 when allowed


class FixedWindowRateLimiter:
    """Allow ``limit`` calls per key per ``window_seconds``."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        max_keys: int = DEFAULT_MAX_KEYS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._window = window_seconds
        self._max_keys = max_keys
        self._clock = clock
        # key → (window_start, count)
        self._windows: OrderedDict[str, tuple[float, int]] = OrderedDict()
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitDecision:
        """Count one request for *key* and say whether it may proceed."""
        now = self._clock()
        with self._lock:
            start, count = self._windows.get(key, (now, 0))
            if now - start >= self._window:
                start, count = now, 0

            if count >= self._limit:
                retry_after = max(1, math.ceil(self._window - (now - start)))
                logger.debug("Rate limit hit for %s (retry in %ds)", key, retry_after)
                return RateLimitDecision(allowed=False, retry_after=retry_after)

            self._windows[key] = (start, count + 1)
            self._windows.move_to_end(key)
            while len(self._windows) > self._max_keys:
                self._windows.popitem(last=False)
            return RateLimitDecision(allowed=True)

    @property
    def tracked_keys(self) -> int:
        return len(self._windows)
