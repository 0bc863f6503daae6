"""Process-scoped owner of the rate limiter and the lock table.

All remote calls share one quota and all writers to a project share one
lock, so both objects must be unique per process. ConcurrencyManager owns
them and exposes explicit lifecycle hooks instead of bare module globals:

- ConcurrencyManager.instance(): the shared manager (created on first use)
- ConcurrencyManager.init(settings): (re)create it from settings
- ConcurrencyManager.reset_all(): full bucket, empty lock table (tests)

The rate limiter is in-memory only. Locks are shared with other processes
when the settings name a lock directory.
"""

from __future__ import annotations

import logging
import threading
from typing import ClassVar

from flatsync.client.concurrency.lock_manager import LockManager
from flatsync.client.concurrency.rate_limiter import TokenBucketRateLimiter
from flatsync.core.config import SyncSettings

logger = logging.getLogger(__name__)


class ConcurrencyManager:
    """Holds the process-wide TokenBucketRateLimiter and LockManager."""

    _instance: ClassVar[ConcurrencyManager | None] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, settings: SyncSettings | None = None) -> None:
        """Create a manager (use instance() for the shared one).

        Args:
            settings: Quota and lock settings (defaults if None).
        """
        self._settings = settings or SyncSettings()
        self.rate_limiter = TokenBucketRateLimiter(
            capacity=self._settings.capacity,
            refill_rate=self._settings.refill_rate,
        )
        self.locks = LockManager(
            default_timeout=self._settings.lock_timeout,
            lock_dir=self._settings.lock_dir,
        )

    @property
    def settings(self) -> SyncSettings:
        """Settings this manager was built from."""
        return self._settings

    @classmethod
    def instance(cls) -> ConcurrencyManager:
        """Get the shared manager, creating it from the environment if needed."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls(SyncSettings.from_env())
            return cls._instance

    @classmethod
    def init(cls, settings: SyncSettings) -> ConcurrencyManager:
        """Replace the shared manager with one built from settings.

        Locks held through the previous manager are dropped.
        """
        with cls._instance_lock:
            if cls._instance is not None:
                cls._instance.locks.release_all_locks()
            cls._instance = cls(settings)
            logger.debug(
                "Concurrency manager initialized (capacity=%d, refill=%.3f/s, lock_timeout=%.1fs)",
                settings.capacity,
                settings.refill_rate,
                settings.lock_timeout,
            )
            return cls._instance

    @classmethod
    def reset_all(cls) -> None:
        """Refill the bucket and clear the lock table of the shared manager."""
        with cls._instance_lock:
            manager = cls._instance
        if manager is None:
            return
        manager.rate_limiter.reset()
        manager.locks.release_all_locks()
