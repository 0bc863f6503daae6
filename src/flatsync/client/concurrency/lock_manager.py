"""Per-project mutual exclusion.

The remote store has no compare-and-swap, no ETags and no version check:
two writers targeting the same project silently overwrite each other
(last-write-wins). LockManager serializes all writes to one project by
holding a lock keyed by the project identifier.

- Locks on different keys never block each other.
- A contended acquire waits up to a timeout, then raises LockTimeoutError
  naming the key and the current holder.
- release_lock() is idempotent.
- hold() is the preferred entry point: the lock is released on every exit
  path, including exceptions raised by the guarded block.

Threads of one process wait on an in-memory table. With a lock directory,
each held key also owns an advisory lock on ``<lock_dir>/<key>.lock``, so
separate processes (two CLI commands on one project) are serialized too.
The file records the holder for timeout messages. The OS drops the
advisory lock when its process dies, so a crashed holder never leaves a
stale lock behind.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from flatsync.client.concurrency.rate_limiter import ConcurrencyError
from flatsync.core.config import DEFAULT_LOCK_TIMEOUT

logger = logging.getLogger(__name__)

# Seconds between attempts on a lock file held by another process
FILE_LOCK_POLL_INTERVAL = 0.05

try:
    import fcntl

    def _try_lock_file(fd: int) -> bool:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def _unlock_file(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)

except ImportError:
    import msvcrt

    def _try_lock_file(fd: int) -> bool:
        os.lseek(fd, 0, os.SEEK_SET)
        try:
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    def _unlock_file(fd: int) -> None:
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)


@dataclass(frozen=True)
class LockInfo:
    """A live lock.

    Attributes:
        key: Resource key (project identifier).
        holder: Label of the operation holding the lock.
        acquired_at: Unix timestamp of acquisition.
        timeout: Seconds the holder was prepared to wait.
    """

    key: str
    holder: str
    acquired_at: float
    timeout: float


@dataclass(frozen=True)
class LockStatus:
    """Diagnostic view of one key."""

    locked: bool
    info: LockInfo | None = None


@dataclass
class LockStats:
    """Counters for observability."""

    acquisitions: int = 0
    contentions: int = 0
    timeouts: int = 0


class LockTimeoutError(ConcurrencyError):
    """Gave up waiting for a held lock.

    Attributes:
        key: The contended key.
        timeout: Seconds waited.
        holder: Info about the holder at the time of the timeout (if any).
    """

    def __init__(self, key: str, timeout: float, holder: LockInfo | None) -> None:
        self.key = key
        self.timeout = timeout
        self.holder = holder
        held_by = holder.holder if holder else "unknown"
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for lock on {key!r} "
            f"(held by {held_by})"
        )


class LockManager:
    """Table of per-key locks, optionally backed by lock files.

    Usage:
        locks = LockManager(lock_dir=Path("~/.flatsync/locks").expanduser())
        with locks.hold(project_id, "write Code.gs"):
            ...  # exclusive access to project_id
    """

    def __init__(
        self, default_timeout: float = DEFAULT_LOCK_TIMEOUT, lock_dir: Path | None = None
    ) -> None:
        """Initialize an empty lock table.

        Args:
            default_timeout: Seconds to wait when acquire_lock() gets no timeout.
            lock_dir: Directory of per-key lock files shared with other
                processes (None = this process only).
        """
        self._default_timeout = default_timeout
        self._lock_dir = Path(lock_dir) if lock_dir is not None else None
        self._cond = threading.Condition(threading.Lock())
        self._locks: dict[str, LockInfo] = {}
        self._files: dict[str, tuple[LockInfo, int]] = {}
        self._stats = LockStats()

    @property
    def default_timeout(self) -> float:
        """Seconds to wait when no explicit timeout is given."""
        return self._default_timeout

    @property
    def lock_dir(self) -> Path | None:
        """Directory of cross-process lock files, if any."""
        return self._lock_dir

    @property
    def stats(self) -> LockStats:
        """Acquisition counters."""
        return self._stats

    def lock_file(self, key: str) -> Path:
        """Get the lock file of a key.

        Raises:
            ValueError: If the manager has no lock directory.
        """
        if self._lock_dir is None:
            raise ValueError("LockManager has no lock directory")
        return self._lock_dir / f"{quote(key, safe='')}.lock"

    def acquire_lock(self, key: str, holder: str, timeout: float | None = None) -> LockInfo:
        """Take the lock for a key, waiting if it is held.

        Args:
            key: Resource key (project identifier).
            holder: Label recorded for diagnostics and error messages.
            timeout: Seconds to wait (None = default timeout).

        Returns:
            The recorded LockInfo.

        Raises:
            LockTimeoutError: If the lock is still held after ``timeout``.
        """
        wait = self._default_timeout if timeout is None else timeout
        deadline = time.monotonic() + wait

        with self._cond:
            if key in self._locks:
                self._stats.contentions += 1
                logger.info(
                    "Waiting for lock on %s (held by %s)", key, self._locks[key].holder
                )

            while key in self._locks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._stats.timeouts += 1
                    raise LockTimeoutError(key, wait, self._locks.get(key))
                self._cond.wait(remaining)

            info = LockInfo(key=key, holder=holder, acquired_at=time.time(), timeout=wait)
            self._locks[key] = info

        if self._lock_dir is not None:
            try:
                self._acquire_file(info, deadline)
            except BaseException:
                self._release_owned(info)
                raise

        with self._cond:
            self._stats.acquisitions += 1
        logger.debug("Acquired lock for %s (%s)", key, holder)
        return info

    def release_lock(self, key: str) -> None:
        """Release the lock for a key. No-op if it is not held."""
        with self._cond:
            info = self._locks.get(key)
        if info is not None:
            self._release_owned(info)

    def get_lock_status(self, key: str) -> LockStatus:
        """Get the lock status of a key, including holders in other processes."""
        with self._cond:
            info = self._locks.get(key)
        if info is None and self._lock_dir is not None:
            info = self._file_lock_holder(key)
        return LockStatus(locked=info is not None, info=info)

    def release_all_locks(self) -> None:
        """Drop every lock (shutdown and test isolation)."""
        with self._cond:
            files = [info for info, _ in self._files.values()]
        for info in files:
            self._release_file(info)
        with self._cond:
            count = len(self._locks)
            self._locks.clear()
            self._cond.notify_all()
        if count:
            logger.info("Released %d lock(s)", count)

    @contextmanager
    def hold(self, key: str, holder: str, timeout: float | None = None) -> Iterator[LockInfo]:
        """Hold the lock for the duration of a ``with`` block.

        Args:
            key: Resource key (project identifier).
            holder: Label of the guarded operation.
            timeout: Seconds to wait for acquisition (None = default).

        Yields:
            The recorded LockInfo.
        """
        info = self.acquire_lock(key, holder, timeout)
        try:
            yield info
        finally:
            self._release_owned(info)

    def _release_owned(self, info: LockInfo) -> None:
        self._release_file(info)
        # Only release if the table still holds this exact lock (release_all_locks
        # may have handed the key to someone else meanwhile).
        with self._cond:
            if self._locks.get(info.key) is not info:
                return
            del self._locks[info.key]
            self._cond.notify_all()
        logger.debug("Released lock for %s (%s)", info.key, info.holder)

    # === Lock files ===

    def _acquire_file(self, info: LockInfo, deadline: float) -> None:
        path = self.lock_file(info.key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_CREAT | os.O_RDWR | getattr(os, "O_CLOEXEC", 0))
        try:
            waiting = False
            while not _try_lock_file(fd):
                if not waiting:
                    waiting = True
                    with self._cond:
                        self._stats.contentions += 1
                    other = self._file_holder(info.key)
                    logger.info(
                        "Waiting for lock file %s (held by %s)",
                        path,
                        other.holder if other else "unknown",
                    )
                if time.monotonic() >= deadline:
                    with self._cond:
                        self._stats.timeouts += 1
                    raise LockTimeoutError(info.key, info.timeout, self._file_holder(info.key))
                time.sleep(FILE_LOCK_POLL_INTERVAL)

            record = {
                "holder": info.holder,
                "pid": os.getpid(),
                "acquired_at": info.acquired_at,
                "timeout": info.timeout,
            }
            os.ftruncate(fd, 0)
            os.lseek(fd, 0, os.SEEK_SET)
            os.write(fd, json.dumps(record).encode("utf-8"))
        except BaseException:
            # Closing the descriptor also drops a lock taken on it
            os.close(fd)
            raise

        with self._cond:
            self._files[info.key] = (info, fd)

    def _release_file(self, info: LockInfo) -> None:
        with self._cond:
            entry = self._files.get(info.key)
            if entry is None or entry[0] is not info:
                return
            del self._files[info.key]
        fd = entry[1]
        try:
            os.ftruncate(fd, 0)
            _unlock_file(fd)
        finally:
            os.close(fd)

    def _file_holder(self, key: str) -> LockInfo | None:
        """Holder recorded in a key's lock file, if readable."""
        try:
            data = json.loads(self.lock_file(key).read_text(encoding="utf-8"))
            return LockInfo(
                key=key,
                holder=f"{data['holder']} (pid {data['pid']})",
                acquired_at=float(data["acquired_at"]),
                timeout=float(data.get("timeout", 0.0)),
            )
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def _file_lock_holder(self, key: str) -> LockInfo | None:
        path = self.lock_file(key)
        if not path.exists():
            return None
        fd = os.open(path, os.O_RDWR | getattr(os, "O_CLOEXEC", 0))
        try:
            if _try_lock_file(fd):
                _unlock_file(fd)
                return None
        finally:
            os.close(fd)
        return self._file_holder(key) or LockInfo(key, "unknown", 0.0, 0.0)
