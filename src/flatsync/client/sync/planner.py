"""Three-way reconciliation planning.

Compares a local snapshot, a remote snapshot and the manifest baseline and
classifies every path of their union:

    local vs base   remote vs base   ->  status
    ------------    --------------       ------
    same            same                 UNCHANGED
    changed         same                 LOCAL_ADDED / LOCAL_MODIFIED / LOCAL_DELETED
    same            changed              REMOTE_ADDED / REMOTE_MODIFIED / REMOTE_DELETED
    changed         changed, equal       CONVERGED
    changed         changed, differ      CONFLICT

Without a baseline entry, a path present on both sides is CONVERGED when
the contents match and a CONFLICT otherwise.

Snapshots map flat names to storage-form content. Planning is pure: it
takes no lock and performs no I/O, so any number of dry runs may run in
parallel with an apply.
"""

from __future__ import annotations

import logging

from flatsync.client.sync.types import (
    DiffOperation,
    DiffType,
    PathStatus,
    SyncPlan,
    SyncSide,
)
from flatsync.core.hashing import git_blob_sha1, hashes_equal
from flatsync.core.types import SyncDirection

logger = logging.getLogger(__name__)

_ADDED = {SyncSide.LOCAL: PathStatus.LOCAL_ADDED, SyncSide.REMOTE: PathStatus.REMOTE_ADDED}
_MODIFIED = {
    SyncSide.LOCAL: PathStatus.LOCAL_MODIFIED,
    SyncSide.REMOTE: PathStatus.REMOTE_MODIFIED,
}
_DELETED = {SyncSide.LOCAL: PathStatus.LOCAL_DELETED, SyncSide.REMOTE: PathStatus.REMOTE_DELETED}

# Execution order: creates/updates, then conflicts, then deletions.
_GROUP_ORDER = {DiffType.CREATE: 0, DiffType.UPDATE: 0, DiffType.CONFLICT: 1, DiffType.DELETE: 2}


def _hashes(snapshot: dict[str, str]) -> dict[str, str]:
    return {path: git_blob_sha1(content) for path, content in snapshot.items()}


def _side_status(side: SyncSide, side_hash: str | None, base_hash: str | None) -> PathStatus:
    if base_hash is None:
        return _ADDED[side]
    if side_hash is None:
        return _DELETED[side]
    return _MODIFIED[side]


class SyncPlanner:
    """Builds SyncPlans. Stateless."""

    @staticmethod
    def classify(
        local_hash: str | None,
        remote_hash: str | None,
        base_hash: str | None,
    ) -> PathStatus:
        """Classify one path from its three hashes (None = absent)."""
        local_changed = not hashes_equal(local_hash, base_hash)
        remote_changed = not hashes_equal(remote_hash, base_hash)

        if not local_changed and not remote_changed:
            return PathStatus.UNCHANGED
        if local_changed and not remote_changed:
            return _side_status(SyncSide.LOCAL, local_hash, base_hash)
        if remote_changed and not local_changed:
            return _side_status(SyncSide.REMOTE, remote_hash, base_hash)
        if hashes_equal(local_hash, remote_hash):
            return PathStatus.CONVERGED
        return PathStatus.CONFLICT

    def plan(
        self,
        local: dict[str, str],
        remote: dict[str, str],
        manifest_hashes: dict[str, str],
        direction: SyncDirection,
    ) -> SyncPlan:
        """Compute the operations that bring the destination up to date.

        Push stages local-side changes as remote writes; pull stages
        remote-side changes as local writes. Changes on the other side are
        left alone. Conflicts are staged in both directions and never
        resolved.

        Args:
            local: Local snapshot, name -> storage-form content.
            remote: Remote snapshot, name -> storage-form content.
            manifest_hashes: Baseline, name -> storage hash.
            direction: PULL or PUSH.

        Returns:
            SyncPlan with operations in execution order.
        """
        direction = SyncDirection(direction)
        local_hashes = _hashes(local)
        remote_hashes = _hashes(remote)

        if direction is SyncDirection.PUSH:
            source, source_hashes, dest_hashes = local, local_hashes, remote_hashes
            target, staged_side = SyncSide.REMOTE, SyncSide.LOCAL
        else:
            source, source_hashes, dest_hashes = remote, remote_hashes, local_hashes
            target, staged_side = SyncSide.LOCAL, SyncSide.REMOTE

        statuses: dict[str, PathStatus] = {}
        operations: list[DiffOperation] = []
        for path in sorted(set(local) | set(remote) | set(manifest_hashes)):
            status = self.classify(
                local_hashes.get(path), remote_hashes.get(path), manifest_hashes.get(path)
            )
            statuses[path] = status

            if status is PathStatus.CONFLICT:
                diff_type = DiffType.CONFLICT
            elif status is _ADDED[staged_side]:
                diff_type = DiffType.CREATE
            elif status is _MODIFIED[staged_side]:
                diff_type = DiffType.UPDATE
            elif status is _DELETED[staged_side]:
                diff_type = DiffType.DELETE
            else:
                continue

            operations.append(
                DiffOperation(
                    type=diff_type,
                    path=path,
                    target=target,
                    status=status,
                    content=source.get(path) if diff_type is not DiffType.DELETE else None,
                    source_hash=(
                        source_hashes.get(path) if diff_type is not DiffType.DELETE else None
                    ),
                    expected_hash=dest_hashes.get(path),
                )
            )

        operations.sort(key=lambda op: (_GROUP_ORDER[op.type], op.path))
        plan = SyncPlan(
            direction=direction,
            operations=operations,
            statuses=statuses,
            local_hashes=local_hashes,
            remote_hashes=remote_hashes,
            base_hashes=dict(manifest_hashes),
        )
        logger.info("Planned %s: %s", direction.value, format_summary(plan))
        return plan


def detect_drift(
    plan: SyncPlan,
    local: dict[str, str],
    remote: dict[str, str],
) -> list[str]:
    """Check that a plan still matches the trees it will be applied to.

    Args:
        plan: Plan computed earlier.
        local: Current local snapshot (storage form).
        remote: Current remote snapshot (storage form).

    Returns:
        One line per drifted operation (empty when the plan is current).
    """
    current = {SyncSide.LOCAL: _hashes(local), SyncSide.REMOTE: _hashes(remote)}
    details: list[str] = []
    for op in plan.actionable:
        label = f"{op.type.value.upper()} {op.path}"
        source_side = SyncSide.LOCAL if op.target is SyncSide.REMOTE else SyncSide.REMOTE
        source_now = current[source_side].get(op.path)
        dest_now = current[op.target].get(op.path)

        if op.type is not DiffType.DELETE:
            if source_now is None:
                details.append(f"{label}: source file no longer exists")
            elif not hashes_equal(source_now, op.source_hash):
                details.append(
                    f"{label}: source changed since plan "
                    f"({(op.source_hash or '')[:8]} -> {source_now[:8]})"
                )
        elif source_now is not None:
            details.append(f"{label}: source file reappeared")

        if not hashes_equal(dest_now, op.expected_hash):
            if dest_now is None:
                details.append(f"{label}: destination file no longer exists")
            else:
                details.append(f"{label}: destination changed since plan")
    return details


def format_summary(plan: SyncPlan) -> str:
    """Summarize a plan, e.g. ``+2 add, ~1 update, -1 delete (4 total)``."""
    if not plan.has_changes:
        return "No changes detected"
    parts = []
    if plan.creates:
        parts.append(f"+{len(plan.creates)} add")
    if plan.updates:
        parts.append(f"~{len(plan.updates)} update")
    if plan.deletes:
        parts.append(f"-{len(plan.deletes)} delete")
    if plan.conflicts:
        parts.append(f"!{len(plan.conflicts)} conflict")
    return ", ".join(parts) + f" ({len(plan.operations)} total)"
