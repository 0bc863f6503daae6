"""Bulk sync between the local mirror and the remote store.

Architecture:
    snapshots + SyncManifest -> SyncPlanner -> SyncPlan -> SyncExecutor

Components:
- **SyncManifest**: Persisted baseline (last agreed hash per path)
- **SyncPlanner**: Pure three-way classification and plan building
- **SyncExecutor**: Applies a plan under the project lock and rate limiter
"""

from flatsync.client.sync.executor import (
    SyncExecutor,
    pull_commit_message,
    snapshot_local,
    snapshot_remote,
    snapshot_trees,
)
from flatsync.client.sync.manifest import MANIFEST_VERSION, ManifestEntry, SyncManifest
from flatsync.client.sync.planner import SyncPlanner, detect_drift, format_summary
from flatsync.client.sync.types import (
    ApplyResult,
    DiffOperation,
    DiffType,
    FailedOperation,
    PathStatus,
    PlanDriftError,
    SyncError,
    SyncPlan,
    SyncSide,
)

__all__ = [
    # executor
    "SyncExecutor",
    "pull_commit_message",
    "snapshot_local",
    "snapshot_remote",
    "snapshot_trees",
    # manifest
    "MANIFEST_VERSION",
    "ManifestEntry",
    "SyncManifest",
    # planner
    "SyncPlanner",
    "detect_drift",
    "format_summary",
    # types
    "ApplyResult",
    "DiffOperation",
    "DiffType",
    "FailedOperation",
    "PathStatus",
    "PlanDriftError",
    "SyncError",
    "SyncPlan",
    "SyncSide",
]
