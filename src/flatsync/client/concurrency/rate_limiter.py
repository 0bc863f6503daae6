"""Token bucket admission control for outbound remote calls.

The remote store enforces a strict quota (100 requests per 100 seconds).
Every remote call must first pass ``check_limit()``. The bucket is refilled
lazily from the elapsed clock time at the moment of each call, so there is
no background thread and correctness does not depend on scheduling.

The limiter never waits or retries: when the bucket is empty it raises
QuotaExceededError with a ``retry_after_seconds`` hint and the caller
decides how to back off.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable

from flatsync.core.config import (
    DEFAULT_QUOTA_PER_WINDOW,
    DEFAULT_SAFETY_FACTOR,
    DEFAULT_WINDOW_SECONDS,
)

logger = logging.getLogger(__name__)


class ConcurrencyError(Exception):
    """Base exception for admission control and locking errors."""


class QuotaExceededError(ConcurrencyError):
    """The remote quota is exhausted.

    Attributes:
        retry_after_seconds: Whole seconds until one request is admitted again.
    """

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"{message} (retry after {retry_after_seconds}s)")


class TokenBucketRateLimiter:
    """Thread-safe token bucket.

    Usage:
        limiter = TokenBucketRateLimiter(capacity=90, refill_rate=0.9)
        limiter.check_limit()  # raises QuotaExceededError when empty
        client.get_file(...)
    """

    def __init__(
        self,
        capacity: int = math.floor(DEFAULT_QUOTA_PER_WINDOW * DEFAULT_SAFETY_FACTOR),
        refill_rate: float = DEFAULT_SAFETY_FACTOR
        * DEFAULT_QUOTA_PER_WINDOW
        / DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize a full bucket.

        Args:
            capacity: Maximum number of tokens.
            refill_rate: Tokens added per second.
            clock: Monotonic clock returning seconds (injectable for tests).
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")

        self._capacity = capacity
        self._refill_rate = refill_rate
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(capacity)
        self._last_refill = clock()

    @property
    def capacity(self) -> int:
        """Maximum number of tokens."""
        return self._capacity

    @property
    def refill_rate(self) -> float:
        """Tokens added per second."""
        return self._refill_rate

    def check_limit(self) -> None:
        """Admit one request or fail.

        Raises:
            QuotaExceededError: If fewer than one token is available. No token
                is consumed in that case.
        """
        with self._lock:
            self._refill()
            if self._tokens < 1:
                retry_after = math.ceil((1 - self._tokens) / self._refill_rate)
                logger.warning(
                    "Remote quota exhausted (%.2f tokens), retry after %ds",
                    self._tokens,
                    retry_after,
                )
                raise QuotaExceededError("Remote API rate limit exceeded", retry_after)
            self._tokens -= 1

    def get_token_count(self) -> int:
        """Get the number of whole tokens available (never charges)."""
        with self._lock:
            self._refill()
            return math.floor(self._tokens)

    def reset(self) -> None:
        """Restore full capacity (test isolation)."""
        with self._lock:
            self._tokens = float(self._capacity)
            self._last_refill = self._clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(float(self._capacity), self._tokens + elapsed * self._refill_rate)
        self._last_refill = now
