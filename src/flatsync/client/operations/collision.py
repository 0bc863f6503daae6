"""Content-hash staleness detection.

A caller that read a file earlier knows the hash it saw (``expected_hash``).
Before a write lands, the live remote content is hashed and compared:

    actual == expected          -> no collision
    actual is None              -> DELETED
    expected is None, actual    -> CREATED_EXTERNALLY
    both present, different     -> MODIFIED

Hashes are computed over the storage form; diffs are rendered over the
display form. Collisions are reported as data alongside a successful
result and never block the write (the store is last-write-wins).
"""

from __future__ import annotations

import difflib
import threading
import time
from dataclasses import dataclass, field
from enum import Enum

from flatsync.client.remote import IDENTITY, ContentTransform
from flatsync.core.hashing import git_blob_sha1, hashes_equal


class StaleAction(str, Enum):
    """How a file drifted since it was last read."""

    MODIFIED = "modified"
    DELETED = "deleted"
    CREATED_EXTERNALLY = "created_externally"


SUMMARY_ICONS = {
    StaleAction.MODIFIED: "[M]",
    StaleAction.DELETED: "[-]",
    StaleAction.CREATED_EXTERNALLY: "[+]",
}


@dataclass
class StaleFile:
    """One file whose live hash differs from the expected one.

    Attributes:
        file: Flat file name.
        expected_hash: Hash seen at the last read (None if it was absent).
        actual_hash: Live hash (None if the file is gone).
        action: Kind of drift.
        diff: Unified diff from the last-read to the live display form.
    """

    file: str
    expected_hash: str | None
    actual_hash: str | None
    action: StaleAction
    diff: str | None = None


@dataclass
class CollisionDiff:
    """Rendered drift: ``unified`` for one file, ``summary`` for several."""

    format: str
    content: str


@dataclass
class CollisionInfo:
    """Result of a staleness check. Purely informational."""

    has_collisions: bool = False
    stale_files: list[StaleFile] = field(default_factory=list)
    recommendation: str = ""
    diff: CollisionDiff | None = None

    @classmethod
    def none(cls) -> CollisionInfo:
        """A result with no collisions."""
        return cls()


@dataclass(frozen=True)
class LedgerEntry:
    """What a caller last saw of one file."""

    hash: str | None
    content: str | None
    recorded_at: float


class ReadLedger:
    """Remembers the hash of every read or write, per (project, file).

    An entry with ``hash=None`` records that the file was absent.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], LedgerEntry] = {}

    def record(self, project_id: str, name: str, content: str | None) -> LedgerEntry:
        """Record storage-form content (None = file absent)."""
        entry = LedgerEntry(
            hash=git_blob_sha1(content) if content is not None else None,
            content=content,
            recorded_at=time.time(),
        )
        with self._lock:
            self._entries[(project_id, name)] = entry
        return entry

    def get(self, project_id: str, name: str) -> LedgerEntry | None:
        with self._lock:
            return self._entries.get((project_id, name))

    def forget(self, project_id: str, name: str) -> None:
        with self._lock:
            self._entries.pop((project_id, name), None)

    def clear(self, project_id: str | None = None) -> None:
        """Drop all entries, or only those of one project."""
        with self._lock:
            if project_id is None:
                self._entries.clear()
            else:
                for key in [k for k in self._entries if k[0] == project_id]:
                    del self._entries[key]


class CollisionDetector:
    """Compares expected hashes against live content."""

    def __init__(self, transform: ContentTransform = IDENTITY) -> None:
        self._transform = transform

    @staticmethod
    def classify(expected_hash: str | None, actual_hash: str | None) -> StaleAction | None:
        """Classify drift between two hashes.

        Returns:
            None when the hashes agree, otherwise the kind of drift.
        """
        if hashes_equal(expected_hash, actual_hash):
            return None
        if actual_hash is None:
            return StaleAction.DELETED
        if expected_hash is None:
            return StaleAction.CREATED_EXTERNALLY
        return StaleAction.MODIFIED

    def stale_file(
        self,
        file: str,
        expected_hash: str | None,
        live: str | None,
        previous: str | None = None,
    ) -> StaleFile | None:
        """Check one file.

        Args:
            file: Flat file name.
            expected_hash: Hash from the last read (None = absent then).
            live: Live storage-form content (None = absent now).
            previous: Storage-form content of the last read, if known; used
                only to render the diff.

        Returns:
            A StaleFile, or None when the file has not drifted.
        """
        actual_hash = git_blob_sha1(live) if live is not None else None
        action = self.classify(expected_hash, actual_hash)
        if action is None:
            return None

        diff = None
        if previous is not None or expected_hash is None:
            diff = self._unified_diff(file, previous, live)
        return StaleFile(file, expected_hash, actual_hash, action, diff or None)

    def check(
        self,
        file: str,
        expected_hash: str | None,
        live: str | None,
        previous: str | None = None,
    ) -> CollisionInfo:
        """Check a single file and build its CollisionInfo."""
        stale = self.stale_file(file, expected_hash, live, previous)
        if stale is None:
            return CollisionInfo.none()
        return build_collision_info([stale])

    def _unified_diff(self, file: str, previous: str | None, live: str | None) -> str:
        before = self._transform.unwrap(previous) if previous is not None else ""
        after = self._transform.unwrap(live) if live is not None else ""
        return "".join(
            difflib.unified_diff(
                before.splitlines(keepends=True),
                after.splitlines(keepends=True),
                fromfile=f"a/{file}",
                tofile=f"b/{file}",
            )
        )


def build_collision_info(stale_files: list[StaleFile]) -> CollisionInfo:
    """Aggregate stale files into one CollisionInfo.

    One file carries its unified diff (when available); several files carry
    a one-line-per-file summary.
    """
    if not stale_files:
        return CollisionInfo.none()

    if len(stale_files) == 1:
        stale = stale_files[0]
        return CollisionInfo(
            has_collisions=True,
            stale_files=[stale],
            recommendation=f"Use cat to refresh {stale.file}",
            diff=CollisionDiff("unified", stale.diff) if stale.diff else None,
        )

    lines = ["Files changed since last read:", ""]
    lines.extend(f"{SUMMARY_ICONS[s.action]} {s.file}" for s in stale_files)
    return CollisionInfo(
        has_collisions=True,
        stale_files=list(stale_files),
        recommendation="Use cat to refresh: " + ", ".join(s.file for s in stale_files),
        diff=CollisionDiff("summary", "\n".join(lines)),
    )
