"""High-level entry point wiring the concurrency core together.

MirrorService is what the CLI (and any other caller) uses: it owns the
rate-limited remote, the orchestrator, the planner and the read ledger,
and resolves each project to its local mirror, hook pipeline and manifest.

Usage:
    with HTTPClient(RemoteConfig(url, token)) as client:
        service = MirrorService(client)
        plan = service.plan("project-id", SyncDirection.PULL)
        result = service.apply("project-id", plan)
"""

from __future__ import annotations

import logging

from flatsync.client.concurrency.manager import ConcurrencyManager
from flatsync.client.local import LocalMirror
from flatsync.client.operations.base import FileOperationStrategy
from flatsync.client.operations.collision import ReadLedger
from flatsync.client.operations.copy import CopyStrategy
from flatsync.client.operations.delete import DeleteStrategy
from flatsync.client.operations.edit import Edit, EditStrategy
from flatsync.client.operations.hooks import GitHookPipeline, HookPipeline, NullHookPipeline
from flatsync.client.operations.move import MoveStrategy
from flatsync.client.operations.orchestrator import OperationOrchestrator, OperationOutcome
from flatsync.client.operations.write import WriteStrategy
from flatsync.client.remote import IDENTITY, ContentTransform, RateLimitedRemote, RemoteClient
from flatsync.client.sync.executor import SyncExecutor, snapshot_trees
from flatsync.client.sync.manifest import SyncManifest
from flatsync.client.sync.planner import SyncPlanner
from flatsync.client.sync.types import ApplyResult, SyncPlan
from flatsync.core.config import SyncSettings
from flatsync.core.types import SyncDirection

logger = logging.getLogger(__name__)


class MirrorService:
    """File operations and bulk sync for remote projects."""

    def __init__(
        self,
        remote: RemoteClient,
        manager: ConcurrencyManager | None = None,
        settings: SyncSettings | None = None,
        transform: ContentTransform = IDENTITY,
        use_git: bool = True,
        lock_timeout: float | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            remote: Raw remote client; it is wrapped with the rate limiter.
            manager: Concurrency manager (shared process instance if None).
            settings: Mirror settings (the manager's settings if None).
            transform: Display/storage content mapping.
            use_git: Commit local changes through git hooks.
            lock_timeout: Seconds to wait for project locks (None = default).
        """
        self._manager = manager or ConcurrencyManager.instance()
        self._settings = settings or self._manager.settings
        self._remote = RateLimitedRemote(remote, self._manager.rate_limiter)
        self._transform = transform
        self._use_git = use_git
        self._lock_timeout = lock_timeout
        self._orchestrator = OperationOrchestrator(self._manager.locks)
        self._planner = SyncPlanner()
        self.ledger = ReadLedger()

    @property
    def remote(self) -> RateLimitedRemote:
        return self._remote

    @property
    def settings(self) -> SyncSettings:
        return self._settings

    def mirror(self, project_id: str) -> LocalMirror:
        """Local mirror of a project."""
        return LocalMirror(self._settings.mirror_path(project_id))

    def hooks(self, project_id: str) -> HookPipeline:
        """Commit pipeline of a project's mirror."""
        if self._use_git:
            return GitHookPipeline(self._settings.mirror_path(project_id))
        return NullHookPipeline()

    def manifest(self, project_id: str) -> SyncManifest:
        """Loaded manifest of a project's mirror."""
        manifest = SyncManifest(self._settings.mirror_path(project_id), project_id)
        manifest.load()
        return manifest

    # === Single-file operations ===

    def read_file(self, project_id: str, name: str) -> str | None:
        """Read a remote file (display form) and record its hash.

        Returns:
            The content, or None if the file does not exist.
        """
        remote_file = self._remote.get_file(project_id, name)
        stored = remote_file.source if remote_file is not None else None
        entry = self.ledger.record(project_id, name, stored)
        logger.debug("Read %s/%s (%s)", project_id, name, entry.hash or "absent")
        return self._transform.unwrap(stored) if stored is not None else None

    def run(
        self, strategy: FileOperationStrategy, change_reason: str | None = None
    ) -> OperationOutcome:
        """Run any strategy through the orchestrator."""
        project_id = strategy.project_id
        return self._orchestrator.execute(
            strategy,
            project_id,
            mirror=self.mirror(project_id),
            hooks=self.hooks(project_id),
            change_reason=change_reason,
            lock_timeout=self._lock_timeout,
        )

    def write_file(
        self,
        project_id: str,
        name: str,
        content: str,
        expected_hash: str | None = None,
        change_reason: str | None = None,
    ) -> OperationOutcome:
        strategy = WriteStrategy(
            project_id,
            self._remote,
            name,
            content,
            expected_hash=expected_hash,
            transform=self._transform,
            ledger=self.ledger,
        )
        return self.run(strategy, change_reason)

    def edit_file(
        self,
        project_id: str,
        name: str,
        edits: list[Edit],
        fuzzy_whitespace: bool = False,
        expected_hash: str | None = None,
        change_reason: str | None = None,
    ) -> OperationOutcome:
        strategy = EditStrategy(
            project_id,
            self._remote,
            name,
            edits,
            fuzzy_whitespace=fuzzy_whitespace,
            expected_hash=expected_hash,
            transform=self._transform,
            ledger=self.ledger,
        )
        return self.run(strategy, change_reason)

    def move_file(
        self,
        project_id: str,
        source: str,
        destination: str,
        overwrite: bool = False,
        change_reason: str | None = None,
    ) -> OperationOutcome:
        strategy = MoveStrategy(
            project_id,
            self._remote,
            source,
            destination,
            overwrite=overwrite,
            transform=self._transform,
            ledger=self.ledger,
        )
        return self.run(strategy, change_reason)

    def copy_file(
        self,
        project_id: str,
        source: str,
        destination: str,
        overwrite: bool = False,
        change_reason: str | None = None,
    ) -> OperationOutcome:
        strategy = CopyStrategy(
            project_id,
            self._remote,
            source,
            destination,
            overwrite=overwrite,
            transform=self._transform,
            ledger=self.ledger,
        )
        return self.run(strategy, change_reason)

    def delete_file(
        self, project_id: str, name: str, change_reason: str | None = None
    ) -> OperationOutcome:
        strategy = DeleteStrategy(
            project_id, self._remote, name, transform=self._transform, ledger=self.ledger
        )
        return self.run(strategy, change_reason)

    # === Bulk sync ===

    def plan(self, project_id: str, direction: SyncDirection) -> SyncPlan:
        """Compute a plan without applying it (takes no lock)."""
        local, remote = snapshot_trees(
            self.mirror(project_id), self._remote, project_id, self._transform
        )
        return self._planner.plan(local, remote, self.manifest(project_id).hashes(), direction)

    def apply(self, project_id: str, plan: SyncPlan, check_drift: bool = True) -> ApplyResult:
        """Apply a plan computed by plan()."""
        hooks = self.hooks(project_id) if plan.direction is SyncDirection.PULL else None
        executor = SyncExecutor(
            self._manager.locks, self._remote, transform=self._transform, hooks=hooks
        )
        return executor.apply(
            plan,
            project_id,
            self.mirror(project_id),
            self.manifest(project_id),
            check_drift=check_drift,
            lock_timeout=self._lock_timeout,
        )

    def sync(self, project_id: str, direction: SyncDirection) -> tuple[SyncPlan, ApplyResult]:
        """Plan and apply in one step.

        Planning takes no lock, so the plan is still checked for drift once
        the project lock is held.
        """
        plan = self.plan(project_id, direction)
        return plan, self.apply(project_id, plan)
