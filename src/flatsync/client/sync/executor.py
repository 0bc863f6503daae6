"""Applies a SyncPlan under the project lock.

Pull writes remote content into the mirror (and commits it when a hook
pipeline is given). Push writes local content to the remote store, in one
batch call when the client supports it, otherwise file by file.

The remote store has no multi-file transaction: when an operation fails,
operations already applied stay applied. Every failure is recorded in the
ApplyResult so the caller can retry exactly the failed subset with
``plan.retry_subset(result.failed_paths)``. The manifest baseline only
advances when every operation succeeded and the plan had no conflicts.
"""

from __future__ import annotations

import logging

from flatsync.client.api import NotFoundError
from flatsync.client.concurrency.lock_manager import LockManager
from flatsync.client.local import LocalMirror
from flatsync.client.operations.hooks import HookPipeline
from flatsync.client.remote import IDENTITY, BatchRemoteClient, ContentTransform, RemoteClient
from flatsync.client.sync.manifest import SyncManifest
from flatsync.client.sync.planner import detect_drift
from flatsync.client.sync.types import (
    ApplyResult,
    DiffOperation,
    DiffType,
    FailedOperation,
    PlanDriftError,
    SyncPlan,
)
from flatsync.core.types import SyncDirection

logger = logging.getLogger(__name__)


def snapshot_local(mirror: LocalMirror, transform: ContentTransform = IDENTITY) -> dict[str, str]:
    """Local tree in storage form."""
    return {name: transform.wrap(content) for name, content in mirror.scan().items()}


def snapshot_remote(
    remote: RemoteClient, project_id: str, mirror: LocalMirror | None = None
) -> dict[str, str]:
    """Remote tree in storage form.

    With a mirror, names the mirror excludes are dropped so both snapshots
    cover the same namespace.
    """
    files = {f.name: f.source for f in remote.list_files(project_id)}
    if mirror is None:
        return files
    skipped = sorted(name for name in files if mirror.excludes(name))
    if skipped:
        logger.debug("Leaving %d excluded remote file(s) out of sync: %s", len(skipped), skipped)
    return {name: source for name, source in files.items() if name not in skipped}


def snapshot_trees(
    mirror: LocalMirror,
    remote: RemoteClient,
    project_id: str,
    transform: ContentTransform = IDENTITY,
) -> tuple[dict[str, str], dict[str, str]]:
    """Local and remote trees in storage form, over the same namespace.

    The local scan runs first: it decides which names are undecodable.
    """
    local = snapshot_local(mirror, transform)
    return local, snapshot_remote(remote, project_id, mirror)


def pull_commit_message(paths: list[str]) -> str:
    if len(paths) == 1:
        return f"Sync {paths[0]} from remote"
    return f"Sync {len(paths)} files from remote"


class SyncExecutor:
    """Applies plans produced by SyncPlanner."""

    def __init__(
        self,
        locks: LockManager,
        remote: RemoteClient,
        transform: ContentTransform = IDENTITY,
        hooks: HookPipeline | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            locks: Lock table guarding remote projects.
            remote: Remote client (normally rate-limited).
            transform: Display/storage content mapping.
            hooks: Commit pipeline for pulled files (None = no commit).
        """
        self._locks = locks
        self._remote = remote
        self._transform = transform
        self._hooks = hooks

    @property
    def supports_batch(self) -> bool:
        return bool(
            getattr(self._remote, "supports_batch", isinstance(self._remote, BatchRemoteClient))
        )

    def apply(
        self,
        plan: SyncPlan,
        project_id: str,
        mirror: LocalMirror,
        manifest: SyncManifest,
        check_drift: bool = True,
        lock_timeout: float | None = None,
    ) -> ApplyResult:
        """Apply a plan.

        Args:
            plan: Plan to apply (conflicts are reported, never applied).
            project_id: Remote project.
            mirror: Local mirror.
            manifest: Baseline, saved when the plan fully succeeds.
            check_drift: Re-snapshot both trees under the lock and refuse a
                plan that no longer matches them.
            lock_timeout: Seconds to wait for the project lock.

        Returns:
            ApplyResult listing succeeded, failed and conflicting paths.

        Raises:
            LockTimeoutError: If the project stays locked.
            PlanDriftError: If ``check_drift`` finds the plan stale.
        """
        holder = f"sync {plan.direction.value} on {project_id}"
        with self._locks.hold(project_id, holder, lock_timeout):
            if check_drift and plan.actionable:
                local, remote = snapshot_trees(mirror, self._remote, project_id, self._transform)
                drift = detect_drift(plan, local, remote)
                if drift:
                    raise PlanDriftError(drift)

            result = ApplyResult(conflicts=[op.path for op in plan.conflicts])
            operations = plan.actionable
            if plan.direction is SyncDirection.PULL:
                self._pull(operations, mirror, result)
            elif self.supports_batch and operations:
                self._push_batch(operations, project_id, result)
            else:
                self._push_each(operations, project_id, result)

            if result.failed or result.commit_error:
                logger.warning(
                    "%s: %d succeeded, %d failed; manifest left unchanged",
                    holder,
                    len(result.succeeded),
                    len(result.failed),
                )
            elif result.conflicts:
                logger.warning(
                    "%s: %d conflict(s) need manual resolution; manifest left unchanged",
                    holder,
                    len(result.conflicts),
                )
            else:
                manifest.project_id = project_id
                manifest.update(plan.resulting_baseline(), plan.direction, result.commit)
                manifest.save()
                result.manifest_updated = True
                logger.info("%s: %d operation(s) applied", holder, len(result.succeeded))

        return result

    def _pull(self, operations: list[DiffOperation], mirror: LocalMirror, result: ApplyResult) -> None:
        for op in operations:
            try:
                if op.type is DiffType.DELETE:
                    mirror.delete(op.path)
                else:
                    mirror.write(op.path, self._transform.unwrap(op.content or ""))
                result.succeeded.append(op.path)
            except Exception as e:
                logger.error("Pull of %s failed: %s", op.path, e)
                result.failed.append(FailedOperation(op.path, str(e)))

        if self._hooks is None or not result.succeeded:
            return
        try:
            result.commit = self._hooks.commit(
                list(result.succeeded), pull_commit_message(result.succeeded)
            )
        except Exception as e:
            logger.error("Committing pulled files failed: %s", e)
            result.commit_error = str(e)

    def _push_each(
        self, operations: list[DiffOperation], project_id: str, result: ApplyResult
    ) -> None:
        for op in operations:
            try:
                if op.type is DiffType.DELETE:
                    try:
                        self._remote.delete_file(project_id, op.path)
                    except NotFoundError:
                        logger.debug("%s already absent remotely", op.path)
                else:
                    self._remote.create_or_update_file(project_id, op.path, op.content or "")
                result.succeeded.append(op.path)
            except Exception as e:
                logger.error("Push of %s failed: %s", op.path, e)
                result.failed.append(FailedOperation(op.path, str(e)))

    def _push_batch(
        self, operations: list[DiffOperation], project_id: str, result: ApplyResult
    ) -> None:
        upserts = {op.path: op.content or "" for op in operations if op.type is not DiffType.DELETE}
        deletes = [op.path for op in operations if op.type is DiffType.DELETE]
        try:
            self._remote.update_files(project_id, upserts, deletes)  # type: ignore[attr-defined]
        except Exception as e:
            # No way to know which files landed: report them all for retry.
            logger.error("Batch push to %s failed: %s", project_id, e)
            result.failed.extend(FailedOperation(op.path, str(e)) for op in operations)
            return
        result.succeeded.extend(op.path for op in operations)
