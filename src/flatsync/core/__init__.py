"""Core module - Shared configuration, hashing, and types."""

from flatsync.core.config import RemoteConfig, SyncSettings
from flatsync.core.hashing import (
    git_blob_sha1,
    hashes_equal,
    is_valid_git_sha1,
    normalize_for_hashing,
)
from flatsync.core.types import OperationType, SyncDirection

__all__ = [
    # Config
    "RemoteConfig",
    "SyncSettings",
    # Hashing
    "git_blob_sha1",
    "hashes_equal",
    "is_valid_git_sha1",
    "normalize_for_hashing",
    # Types
    "OperationType",
    "SyncDirection",
]
