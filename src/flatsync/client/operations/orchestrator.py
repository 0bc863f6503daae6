"""Drives a FileOperationStrategy through its two phases under a lock.

States:
    PENDING -> COMPUTED -> LOCAL_COMMITTED -> APPLIED
       |          |              |
       +----------+--------------+--> FAILED -> ROLLED_BACK

A failure while computing ends in FAILED: nothing was written, so there is
nothing to undo. A failure after COMPUTED (local write, commit hooks or
the remote apply) reverts the local commit, asks the strategy to roll back
its remote writes and ends in ROLLED_BACK.

All state transitions are validated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from flatsync.client.concurrency.lock_manager import LockManager
from flatsync.client.local import LocalMirror
from flatsync.client.operations.base import (
    DELETE_MARKER,
    FileOperationStrategy,
    OperationError,
    OperationResult,
)
from flatsync.client.operations.collision import CollisionInfo
from flatsync.client.operations.hooks import HookPipeline, NullHookPipeline

logger = logging.getLogger(__name__)


class OperationState(str, Enum):
    """Lifecycle of one orchestrated operation."""

    PENDING = "pending"
    COMPUTED = "computed"
    LOCAL_COMMITTED = "local_committed"
    APPLIED = "applied"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


# Valid state transitions
VALID_TRANSITIONS: dict[OperationState, set[OperationState]] = {
    OperationState.PENDING: {OperationState.COMPUTED, OperationState.FAILED},
    OperationState.COMPUTED: {OperationState.LOCAL_COMMITTED, OperationState.FAILED},
    OperationState.LOCAL_COMMITTED: {OperationState.APPLIED, OperationState.FAILED},
    OperationState.APPLIED: set(),  # Terminal
    OperationState.FAILED: {OperationState.ROLLED_BACK},
    OperationState.ROLLED_BACK: set(),  # Terminal
}


class InvalidTransitionError(Exception):
    """Raised when attempting an invalid state transition."""


class OperationFailedError(OperationError):
    """An operation failed after its changes were computed.

    Attributes:
        state: Final state (ROLLED_BACK).
        affected_files: Files the operation was changing.
        cause: The original exception.
    """

    def __init__(
        self,
        description: str,
        state: OperationState,
        affected_files: list[str],
        cause: BaseException,
    ) -> None:
        self.state = state
        self.affected_files = affected_files
        self.cause = cause
        super().__init__(f"{description} failed and was rolled back: {cause}")


@dataclass
class OperationRun:
    """State of one orchestrated operation, with its transition history."""

    description: str
    state: OperationState = OperationState.PENDING
    history: list[OperationState] = field(default_factory=lambda: [OperationState.PENDING])

    def transition_to(self, new_state: OperationState) -> None:
        """Transition to a new state with validation."""
        if new_state not in VALID_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.name} to {new_state.name}"
            )
        logger.debug("%s: %s -> %s", self.description, self.state.name, new_state.name)
        self.state = new_state
        self.history.append(new_state)


@dataclass
class OperationOutcome:
    """Successful result of an orchestrated operation.

    Attributes:
        state: Final state (APPLIED).
        result: What the strategy wrote remotely.
        affected_files: Files changed.
        commit: Local commit identifier (None without git or when the hooks
            left nothing to commit).
        commit_message: Message used for the local commit.
        history: States visited.
    """

    state: OperationState
    result: OperationResult
    affected_files: list[str]
    commit: str | None
    commit_message: str
    history: list[OperationState]

    @property
    def collision(self) -> CollisionInfo:
        return self.result.collision


class OperationOrchestrator:
    """Runs strategies: compute, commit locally, apply remotely, roll back."""

    def __init__(self, locks: LockManager) -> None:
        """Initialize the orchestrator.

        Args:
            locks: Lock table guarding remote projects.
        """
        self._locks = locks

    def execute(
        self,
        strategy: FileOperationStrategy,
        project_id: str | None = None,
        mirror: LocalMirror | None = None,
        hooks: HookPipeline | None = None,
        change_reason: str | None = None,
        lock_timeout: float | None = None,
    ) -> OperationOutcome:
        """Run one operation while holding the project lock.

        Args:
            strategy: Operation to run.
            project_id: Project to lock (defaults to the strategy's).
            mirror: Local mirror receiving the change before it is applied
                remotely (None skips the local step).
            hooks: Commit pipeline run in the mirror (None = no hooks).
            change_reason: Commit message (generated when None).
            lock_timeout: Seconds to wait for the lock (None = default).

        Returns:
            OperationOutcome in state APPLIED.

        Raises:
            LockTimeoutError: If the project stays locked.
            ValidationError, FileOperationError: If computing failed
                (nothing written, no rollback).
            OperationFailedError: If anything failed after computing
                (rollback attempted).
        """
        project_id = project_id or strategy.project_id
        pipeline = hooks or NullHookPipeline()
        run = OperationRun(description=f"{strategy.get_type().value} on {project_id}")

        with self._locks.hold(project_id, run.description, lock_timeout):
            try:
                changes = strategy.compute_changes()
            except Exception:
                run.transition_to(OperationState.FAILED)
                logger.warning("Computing %s failed", run.description)
                raise
            run.transition_to(OperationState.COMPUTED)

            affected = strategy.get_affected_files()
            message = change_reason or strategy.describe()
            snapshot = {name: mirror.read(name) for name in affected} if mirror else {}
            commit: str | None = None

            try:
                if mirror is not None:
                    self._write_local(mirror, changes)
                    commit = pipeline.commit(affected, message)
                    validated = {name: mirror.read(name) or DELETE_MARKER for name in affected}
                else:
                    validated = dict(changes)
                run.transition_to(OperationState.LOCAL_COMMITTED)

                result = strategy.apply_changes(validated)
                run.transition_to(OperationState.APPLIED)
            except Exception as e:
                run.transition_to(OperationState.FAILED)
                logger.error("%s failed: %s", message, e)
                self._undo_local(mirror, pipeline, commit, snapshot)
                try:
                    strategy.rollback()
                except Exception:
                    logger.exception("Rollback of %s failed", message)
                run.transition_to(OperationState.ROLLED_BACK)
                raise OperationFailedError(message, run.state, affected, e) from e

        return OperationOutcome(
            state=run.state,
            result=result,
            affected_files=affected,
            commit=commit,
            commit_message=message,
            history=list(run.history),
        )

    @staticmethod
    def _write_local(mirror: LocalMirror, changes: dict[str, str]) -> None:
        for name, content in changes.items():
            if content == DELETE_MARKER:
                mirror.delete(name)
            else:
                mirror.write(name, content)

    @staticmethod
    def _undo_local(
        mirror: LocalMirror | None,
        pipeline: HookPipeline,
        commit: str | None,
        snapshot: dict[str, str | None],
    ) -> None:
        if mirror is None:
            return
        if commit is not None:
            try:
                pipeline.revert(commit)
                return
            except Exception:
                logger.exception("Reverting local commit %s failed", commit)
        for name, content in snapshot.items():
            try:
                if content is None:
                    mirror.delete(name)
                else:
                    mirror.write(name, content)
            except OSError:
                logger.exception("Restoring local file %s failed", name)
