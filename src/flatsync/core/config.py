"""Shared configuration classes for flatsync.

This module defines the connection settings for the remote store and the
tuning knobs of the concurrency core (quota, lock timeout, mirror root).
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Remote quota: 100 requests per 100 seconds, with a 10% safety margin
DEFAULT_QUOTA_PER_WINDOW = 100
DEFAULT_WINDOW_SECONDS = 100.0
DEFAULT_SAFETY_FACTOR = 0.9

DEFAULT_LOCK_TIMEOUT = 30.0  # seconds
MIN_LOCK_TIMEOUT = 1.0  # seconds

LOCK_TIMEOUT_ENV = "FLATSYNC_LOCK_TIMEOUT"
MIRROR_ROOT_ENV = "FLATSYNC_MIRROR_ROOT"


def default_mirror_root() -> Path:
    """Get the default directory holding one local mirror per project."""
    return Path.home() / "flatsync"


@dataclass
class RemoteConfig:
    """Configuration for connecting to the remote project store.

    Attributes:
        server_url: Base URL of the store API (e.g., "https://store.example.com").
        token: Bearer token obtained by the (external) authentication flow.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if the store is reached over HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class SyncSettings:
    """Tuning of the concurrency core.

    Attributes:
        quota_per_window: Requests the remote store allows per window.
        window_seconds: Length of the quota window in seconds.
        safety_factor: Fraction of the true quota the rate limiter uses.
        lock_timeout: Default seconds to wait for a project lock.
        mirror_root: Directory under which project mirrors live.
        lock_dir: Directory of per-project lock files shared between
            processes (None = locks are private to this process).
    """

    quota_per_window: int = DEFAULT_QUOTA_PER_WINDOW
    window_seconds: float = DEFAULT_WINDOW_SECONDS
    safety_factor: float = DEFAULT_SAFETY_FACTOR
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    mirror_root: Path = field(default_factory=default_mirror_root)
    lock_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.quota_per_window <= 0:
            raise ValueError("quota_per_window must be positive")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if not 0 < self.safety_factor <= 1:
            raise ValueError("safety_factor must be in (0, 1]")
        self.mirror_root = Path(self.mirror_root).expanduser()
        if self.lock_dir is not None:
            self.lock_dir = Path(self.lock_dir).expanduser()

    @property
    def capacity(self) -> int:
        """Token bucket capacity, kept below the true quota."""
        return max(1, math.floor(self.quota_per_window * self.safety_factor))

    @property
    def refill_rate(self) -> float:
        """Tokens added per second."""
        return self.safety_factor * self.quota_per_window / self.window_seconds

    def mirror_path(self, project_id: str) -> Path:
        """Get the local mirror directory of a project."""
        return self.mirror_root / project_id

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> SyncSettings:
        """Build settings, honouring environment overrides.

        ``FLATSYNC_LOCK_TIMEOUT`` is read in seconds and must be at least one
        second; invalid values are logged and ignored.
        ``FLATSYNC_MIRROR_ROOT`` replaces the default mirror root.

        Args:
            environ: Environment mapping (defaults to ``os.environ``).

        Returns:
            SyncSettings instance.
        """
        env = os.environ if environ is None else environ
        settings = cls()

        raw_timeout = env.get(LOCK_TIMEOUT_ENV)
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                timeout = 0.0
            if timeout < MIN_LOCK_TIMEOUT:
                logger.warning(
                    "Invalid %s=%r, must be >= %.0fs. Using default %.0fs",
                    LOCK_TIMEOUT_ENV,
                    raw_timeout,
                    MIN_LOCK_TIMEOUT,
                    DEFAULT_LOCK_TIMEOUT,
                )
            else:
                logger.info("Using lock timeout from %s: %.1fs", LOCK_TIMEOUT_ENV, timeout)
                settings.lock_timeout = timeout

        raw_root = env.get(MIRROR_ROOT_ENV)
        if raw_root:
            settings.mirror_root = Path(raw_root).expanduser()

        return settings
