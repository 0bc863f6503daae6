"""Shared types for flatsync.

This module defines enums used by both the single-file operations and the
bulk sync engine.
"""

from __future__ import annotations

from enum import Enum


class SyncDirection(str, Enum):
    """Direction of a bulk sync.

    PULL copies remote changes into the local mirror, PUSH copies local
    changes to the remote store.
    """

    PULL = "pull"
    PUSH = "push"


class OperationType(str, Enum):
    """Kind of single-file operation (used for commit messages and logs)."""

    WRITE = "write"
    EDIT = "edit"
    MOVE = "move"
    COPY = "copy"
    DELETE = "delete"
    SYNC = "sync"
