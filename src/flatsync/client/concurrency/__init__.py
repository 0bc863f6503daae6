"""Admission control and per-project locking.

Components:
- **TokenBucketRateLimiter**: global quota guard for remote calls
- **LockManager**: per-project mutual exclusion with timeout
- **ConcurrencyManager**: process-scoped owner of both
"""

from flatsync.client.concurrency.lock_manager import (
    LockInfo,
    LockManager,
    LockStats,
    LockStatus,
    LockTimeoutError,
)
from flatsync.client.concurrency.manager import ConcurrencyManager
from flatsync.client.concurrency.rate_limiter import (
    ConcurrencyError,
    QuotaExceededError,
    TokenBucketRateLimiter,
)

__all__ = [
    "ConcurrencyError",
    "ConcurrencyManager",
    "LockInfo",
    "LockManager",
    "LockStats",
    "LockStatus",
    "LockTimeoutError",
    "QuotaExceededError",
    "TokenBucketRateLimiter",
]
