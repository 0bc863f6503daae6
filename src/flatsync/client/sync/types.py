"""Shared types and dataclasses for bulk sync.

This module provides:
- SyncError, PlanDriftError: Exception classes
- SyncSide: Which tree an operation writes
- PathStatus: Three-way classification of one path
- DiffType, DiffOperation: One planned change
- SyncPlan: Ordered operations plus the snapshot hashes they came from
- FailedOperation, ApplyResult: Outcome of applying a plan
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from flatsync.core.hashing import hashes_equal
from flatsync.core.types import SyncDirection


class SyncError(Exception):
    """Base exception for sync errors."""


class PlanDriftError(SyncError):
    """The trees changed between planning and applying.

    Attributes:
        details: One line per drifted operation.
    """

    def __init__(self, details: list[str]) -> None:
        self.details = details
        super().__init__(
            f"Plan is stale ({len(details)} drifted operation(s)): " + "; ".join(details)
        )


class SyncSide(str, Enum):
    """Tree written by an operation."""

    LOCAL = "local"
    REMOTE = "remote"


class PathStatus(str, Enum):
    """How one path differs between local, remote and the baseline."""

    UNCHANGED = "unchanged"
    LOCAL_ADDED = "local_added"
    LOCAL_MODIFIED = "local_modified"
    LOCAL_DELETED = "local_deleted"
    REMOTE_ADDED = "remote_added"
    REMOTE_MODIFIED = "remote_modified"
    REMOTE_DELETED = "remote_deleted"
    CONVERGED = "converged"  # changed identically on both sides
    CONFLICT = "conflict"


class DiffType(str, Enum):
    """Kind of planned change."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class DiffOperation:
    """One planned change.

    Attributes:
        type: Kind of change.
        path: Flat file name.
        target: Tree the change writes.
        status: Classification that produced the operation.
        content: Storage-form content to write (None for deletes, and for
            conflicts whose source side was deleted).
        source_hash: Hash of ``content`` (None when content is None).
        expected_hash: Hash at the destination when the plan was made
            (None if the file did not exist there).
    """

    type: DiffType
    path: str
    target: SyncSide
    status: PathStatus
    content: str | None = None
    source_hash: str | None = None
    expected_hash: str | None = None


@dataclass
class SyncPlan:
    """Ordered reconciliation plan for one direction.

    Creates and updates come first, then conflicts, then deletions.

    Attributes:
        direction: Sync direction the plan was made for.
        operations: Planned changes in execution order.
        statuses: Classification of every path in the three snapshots.
        local_hashes: Storage hashes of the local tree at planning time.
        remote_hashes: Storage hashes of the remote tree at planning time.
        base_hashes: Manifest baseline at planning time.
        created_at: Unix timestamp.
    """

    direction: SyncDirection
    operations: list[DiffOperation] = field(default_factory=list)
    statuses: dict[str, PathStatus] = field(default_factory=dict)
    local_hashes: dict[str, str] = field(default_factory=dict)
    remote_hashes: dict[str, str] = field(default_factory=dict)
    base_hashes: dict[str, str] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def _of_type(self, diff_type: DiffType) -> list[DiffOperation]:
        return [op for op in self.operations if op.type is diff_type]

    @property
    def creates(self) -> list[DiffOperation]:
        return self._of_type(DiffType.CREATE)

    @property
    def updates(self) -> list[DiffOperation]:
        return self._of_type(DiffType.UPDATE)

    @property
    def deletes(self) -> list[DiffOperation]:
        return self._of_type(DiffType.DELETE)

    @property
    def conflicts(self) -> list[DiffOperation]:
        return self._of_type(DiffType.CONFLICT)

    @property
    def actionable(self) -> list[DiffOperation]:
        """Operations the executor applies (everything but conflicts)."""
        return [op for op in self.operations if op.type is not DiffType.CONFLICT]

    @property
    def has_changes(self) -> bool:
        return bool(self.operations)

    @property
    def has_conflicts(self) -> bool:
        return any(op.type is DiffType.CONFLICT for op in self.operations)

    @property
    def paths(self) -> list[str]:
        return [op.path for op in self.operations]

    def retry_subset(self, paths: list[str] | set[str]) -> SyncPlan:
        """Build a plan holding only the operations on the given paths.

        Used to retry exactly the operations that failed in a previous
        apply. Snapshot hashes are carried over unchanged.
        """
        wanted = set(paths)
        return SyncPlan(
            direction=self.direction,
            operations=[op for op in self.operations if op.path in wanted],
            statuses={p: s for p, s in self.statuses.items() if p in wanted},
            local_hashes=dict(self.local_hashes),
            remote_hashes=dict(self.remote_hashes),
            base_hashes=dict(self.base_hashes),
        )

    def resulting_baseline(self) -> dict[str, str]:
        """Baseline hashes once every actionable operation has succeeded.

        A path gets its new hash when both trees end up identical, drops out
        when both end up without it, and keeps its previous baseline entry
        otherwise (changes left on the side this direction does not touch).
        """
        final = {
            SyncSide.LOCAL: dict(self.local_hashes),
            SyncSide.REMOTE: dict(self.remote_hashes),
        }
        for op in self.actionable:
            if op.type is DiffType.DELETE:
                final[op.target].pop(op.path, None)
            elif op.source_hash is not None:
                final[op.target][op.path] = op.source_hash

        local, remote = final[SyncSide.LOCAL], final[SyncSide.REMOTE]
        baseline: dict[str, str] = {}
        for path in sorted(set(local) | set(remote) | set(self.base_hashes)):
            local_hash, remote_hash = local.get(path), remote.get(path)
            if local_hash is not None and hashes_equal(local_hash, remote_hash):
                baseline[path] = local_hash
            elif local_hash is None and remote_hash is None:
                continue
            elif path in self.base_hashes:
                baseline[path] = self.base_hashes[path]
        return baseline


@dataclass
class FailedOperation:
    """An operation that raised while being applied."""

    path: str
    error: str


@dataclass
class ApplyResult:
    """Outcome of applying a plan.

    Attributes:
        succeeded: Paths applied successfully.
        failed: Paths that failed, with the error message.
        conflicts: Paths skipped because they conflict.
        manifest_updated: Whether the baseline was advanced.
        commit: Local commit of pulled files (None if no commit was made).
        commit_error: Why committing pulled files failed, if it did.
    """

    succeeded: list[str] = field(default_factory=list)
    failed: list[FailedOperation] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    manifest_updated: bool = False
    commit: str | None = None
    commit_error: str | None = None

    @property
    def failed_paths(self) -> list[str]:
        return [f.path for f in self.failed]

    @property
    def success(self) -> bool:
        """No operation failed (conflicts may remain)."""
        return not self.failed and self.commit_error is None

    @property
    def complete(self) -> bool:
        """Everything applied and nothing left in conflict."""
        return self.success and not self.conflicts
