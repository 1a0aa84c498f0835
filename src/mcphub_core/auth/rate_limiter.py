"""Per-server outbound rate limiting.

Two algorithms, selected by RateLimitStrategy:
- Sliding window: at most ``max_requests`` timestamps inside the trailing window
- Token bucket: ``max_requests`` burst capacity refilled linearly over the window

Defaults:
- 100 requests per 60 second window
- Idle records are purged by cleanup() once older than twice the window
"""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from mcphub_core.types import RateLimitStrategy

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 100
DEFAULT_WINDOW_SECONDS = 60.0


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_at: float  # clock value at which capacity frees up
    retry_after: float = 0.0  # seconds; 0 when allowed


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


class RateLimiter:
    """In-memory rate limiter keyed by server id."""

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        strategy: RateLimitStrategy = RateLimitStrategy.SLIDING_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            max_requests: Requests allowed per window
            window_seconds: Window length in seconds
            strategy: Sliding window or token bucket
            clock: Monotonic time source (injectable for tests)
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.strategy = strategy
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._buckets: dict[str, _Bucket] = {}

    def check_limit(self, key: str) -> RateLimitResult:
        """Consume one request for ``key`` if capacity allows.

        Args:
            key: Rate limit key (server id)

        Returns:
            RateLimitResult; allowed is False when the request must wait
        """
        if self.strategy == RateLimitStrategy.TOKEN_BUCKET:
            return self._check_token_bucket(key)
        return self._check_sliding_window(key)

    def _check_token_bucket(self, key: str) -> RateLimitResult:
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=float(self.max_requests), last_refill=now)
            self._buckets[key] = bucket

        elapsed = now - bucket.last_refill
        refill = elapsed / self.window_seconds * self.max_requests
        if refill > 0:
            bucket.tokens = min(float(self.max_requests), bucket.tokens + refill)
            bucket.last_refill = now

        if bucket.tokens >= 1:
            bucket.tokens -= 1
            return RateLimitResult(
                allowed=True,
                remaining=math.floor(bucket.tokens),
                reset_at=now + self.window_seconds,
            )

        per_token = self.window_seconds / self.max_requests
        retry_after = (1 - bucket.tokens) * per_token
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=now + retry_after,
            retry_after=retry_after,
        )

    def _check_sliding_window(self, key: str) -> RateLimitResult:
        now = self._clock()
        window_start = now - self.window_seconds
        records = self._windows.setdefault(key, deque())
        while records and records[0] <= window_start:
            records.popleft()

        if len(records) < self.max_requests:
            records.append(now)
            return RateLimitResult(
                allowed=True,
                remaining=self.max_requests - len(records),
                reset_at=records[0] + self.window_seconds,
            )

        reset_at = records[0] + self.window_seconds
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=reset_at,
            retry_after=max(0.0, reset_at - now),
        )

    def reset(self, key: str) -> None:
        """Forget all records for ``key``."""
        self._windows.pop(key, None)
        self._buckets.pop(key, None)

    def tracked_keys(self) -> list[str]:
        return sorted(set(self._windows) | set(self._buckets))

    def cleanup(self) -> int:
        """Purge expired records.

        Returns:
            Number of keys removed
        """
        now = self._clock()
        removed = 0

        window_start = now - self.window_seconds
        for key in list(self._windows):
            records = self._windows[key]
            while records and records[0] <= window_start:
                records.popleft()
            if not records:
                del self._windows[key]
                removed += 1

        stale_before = now - self.window_seconds * 2
        for key in list(self._buckets):
            if self._buckets[key].last_refill < stale_before:
                del self._buckets[key]
                removed += 1

        if removed:
            logger.debug("Rate limiter cleanup removed %d keys", removed)
        return removed
