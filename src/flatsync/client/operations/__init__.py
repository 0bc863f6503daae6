"""Single-file operations with two-phase apply.

Architecture:
    Strategy.compute_changes -> local mirror + commit hooks -> Strategy.apply_changes

Components:
- **FileOperationStrategy**: Write / Edit / Move / Copy / Delete
- **OperationOrchestrator**: State machine running a strategy under the project lock
- **CollisionDetector**: Hash-based staleness reporting
- **HookPipeline**: Local commit step (git hooks)
"""

from flatsync.client.operations.base import (
    DELETE_MARKER,
    FileOperationError,
    FileOperationStrategy,
    OperationError,
    OperationResult,
    ValidationError,
    generate_commit_message,
    validate_file_name,
)
from flatsync.client.operations.collision import (
    CollisionDetector,
    CollisionDiff,
    CollisionInfo,
    LedgerEntry,
    ReadLedger,
    StaleAction,
    StaleFile,
    build_collision_info,
)
from flatsync.client.operations.copy import CopyStrategy
from flatsync.client.operations.delete import DeleteStrategy
from flatsync.client.operations.edit import MAX_EDITS, Edit, EditStrategy
from flatsync.client.operations.hooks import (
    GitHookPipeline,
    HookError,
    HookPipeline,
    NullHookPipeline,
)
from flatsync.client.operations.move import MoveStrategy
from flatsync.client.operations.orchestrator import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    OperationFailedError,
    OperationOrchestrator,
    OperationOutcome,
    OperationRun,
    OperationState,
)
from flatsync.client.operations.write import WriteStrategy

__all__ = [
    # base
    "DELETE_MARKER",
    "FileOperationError",
    "FileOperationStrategy",
    "OperationError",
    "OperationResult",
    "ValidationError",
    "generate_commit_message",
    "validate_file_name",
    # collision
    "CollisionDetector",
    "CollisionDiff",
    "CollisionInfo",
    "LedgerEntry",
    "ReadLedger",
    "StaleAction",
    "StaleFile",
    "build_collision_info",
    # strategies
    "CopyStrategy",
    "DeleteStrategy",
    "Edit",
    "EditStrategy",
    "MAX_EDITS",
    "MoveStrategy",
    "WriteStrategy",
    # hooks
    "GitHookPipeline",
    "HookError",
    "HookPipeline",
    "NullHookPipeline",
    # orchestrator
    "VALID_TRANSITIONS",
    "InvalidTransitionError",
    "OperationFailedError",
    "OperationOrchestrator",
    "OperationOutcome",
    "OperationRun",
    "OperationState",
]
