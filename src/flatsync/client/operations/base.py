"""Two-phase file operation contract.

Every single-file operation is split in two so local validation hooks can
run between deciding *what* to change and writing it remotely:

1. ``compute_changes()`` reads the remote store and returns the target
   content of every affected file (display form). It never writes. An
   empty string means "delete this file".
2. ``apply_changes(validated)`` writes the (possibly hook-modified) content
   to the remote store, wrapping it back to the storage form.
3. ``rollback()`` undoes the remote writes ``apply_changes`` attempted,
   restoring the content captured during ``compute_changes``.

The orchestrator drives these phases generically; it knows nothing about
individual operation kinds.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from flatsync.client.api import NotFoundError
from flatsync.client.operations.collision import (
    CollisionDetector,
    CollisionInfo,
    ReadLedger,
    StaleFile,
    build_collision_info,
)
from flatsync.client.remote import IDENTITY, ContentTransform, RemoteClient
from flatsync.core.hashing import hashes_equal
from flatsync.core.types import OperationType

logger = logging.getLogger(__name__)

DELETE_MARKER = ""


class OperationError(Exception):
    """Base exception for single-file operations."""


class ValidationError(OperationError):
    """Malformed operation input. Raised before anything is written.

    Attributes:
        field: Name of the offending input.
        value: The rejected value.
        expected: What a valid value looks like.
    """

    def __init__(self, field: str, value: Any, expected: str) -> None:
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid {field}: expected {expected}, got {value!r}")


class FileOperationError(OperationError):
    """An operation cannot proceed on a file (missing source, no match...).

    Attributes:
        operation: Operation label (e.g. "move", "edit (2)").
        path: File the operation targeted.
        reason: Human-readable cause.
    """

    def __init__(self, operation: str, path: str, reason: str) -> None:
        self.operation = operation
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot {operation} {path}: {reason}")


@dataclass
class OperationResult:
    """Outcome of ``apply_changes``.

    Attributes:
        operation: Kind of operation.
        files: Written files, name -> new storage hash (None if deleted).
        collision: Staleness detected against the caller's last reads.
        details: Operation-specific extras (e.g. number of edits applied).
    """

    operation: OperationType
    files: dict[str, str | None] = field(default_factory=dict)
    collision: CollisionInfo = field(default_factory=CollisionInfo.none)
    details: dict[str, Any] = field(default_factory=dict)


def validate_file_name(field_name: str, value: Any) -> str:
    """Check a flat remote file name.

    Raises:
        ValidationError: If the name is empty, absolute or contains
            ``.``/``..`` segments.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field_name, value, "a non-empty file name")
    if value.startswith("/") or "\\" in value:
        raise ValidationError(field_name, value, "a relative name using '/' separators")
    if any(part in ("", ".", "..") for part in value.split("/")):
        raise ValidationError(field_name, value, "a name without empty, '.' or '..' segments")
    return value


def generate_commit_message(operation: OperationType, files: list[str]) -> str:
    """Build a default commit message from the operation kind and files."""
    primary = files[0] if files else "files"
    if operation in (OperationType.WRITE, OperationType.EDIT):
        return f"Update {primary}"
    if operation is OperationType.MOVE:
        return f"Move {files[0]} to {files[1]}" if len(files) >= 2 else f"Move {primary}"
    if operation is OperationType.COPY:
        return f"Copy {files[0]} to {files[1]}" if len(files) >= 2 else f"Copy {primary}"
    if operation is OperationType.DELETE:
        return f"Delete {primary}"
    if operation is OperationType.SYNC:
        return f"Sync {primary} from remote"
    return f"Modify {primary}"


class FileOperationStrategy(ABC):
    """Base class of the write / edit / move / copy / delete operations.

    Subclasses implement ``compute_changes`` and ``get_type`` and record,
    for every file they touch, its storage-form content at compute time
    through ``_capture``. Applying and rolling back are shared.
    """

    def __init__(
        self,
        project_id: str,
        remote: RemoteClient,
        *,
        transform: ContentTransform = IDENTITY,
        ledger: ReadLedger | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            project_id: Remote project the operation targets.
            remote: Remote client (normally rate-limited).
            transform: Display/storage content mapping.
            ledger: Last-read hashes used for collision detection.
        """
        self.project_id = project_id
        self._remote = remote
        self._transform = transform
        self._ledger = ledger
        self._detector = CollisionDetector(transform)
        self._computed: dict[str, str] | None = None
        self._originals: dict[str, str | None] = {}
        self._expected: dict[str, str | None] = {}
        self._attempted: list[str] = []

    # === Contract ===

    @abstractmethod
    def compute_changes(self) -> dict[str, str]:
        """Derive the target content of every affected file (no writes).

        Returns:
            name -> display-form content, ``""`` meaning delete.

        Raises:
            ValidationError: On malformed input.
            FileOperationError: If a source file is missing or unusable.
        """

    @abstractmethod
    def get_type(self) -> OperationType:
        """Kind of operation."""

    def describe(self) -> str:
        """One-line description for logs and commit messages."""
        return generate_commit_message(self.get_type(), self.get_affected_files())

    def get_affected_files(self) -> list[str]:
        """Files this operation changes (empty before compute_changes)."""
        return list(self._computed) if self._computed is not None else []

    def apply_changes(self, validated: dict[str, str]) -> OperationResult:
        """Write validated content to the remote store.

        Creates and updates are sent before deletions so a move never
        leaves the project without either copy.

        Args:
            validated: name -> display-form content after local hooks.

        Returns:
            OperationResult with new hashes and collision info.

        Raises:
            RuntimeError: If compute_changes() was not called first.
            FileOperationError: If ``validated`` lacks an affected file.
        """
        if self._computed is None:
            raise RuntimeError("compute_changes() must be called before apply_changes()")

        missing = [name for name in self._computed if name not in validated]
        if missing:
            raise FileOperationError(
                self.get_type().value, missing[0], "no validated content provided"
            )

        collision = self._detect_collisions()
        if collision.has_collisions:
            logger.warning(
                "%s: %d file(s) changed since last read: %s",
                self.describe(),
                len(collision.stale_files),
                ", ".join(s.file for s in collision.stale_files),
            )

        ordered = sorted(self._computed, key=lambda n: validated[n] == DELETE_MARKER)
        result = OperationResult(operation=self.get_type(), collision=collision)
        for name in ordered:
            content = validated[name]
            self._attempted.append(name)
            if content == DELETE_MARKER:
                self._remote.delete_file(self.project_id, name)
                result.files[name] = None
                self._remember(name, None)
            else:
                stored = self._remote.create_or_update_file(
                    self.project_id, name, self._transform.wrap(content)
                )
                result.files[name] = stored.hash
                self._remember(name, stored.source)

        logger.info("%s applied to %s", self.describe(), self.project_id)
        return result

    def rollback(self) -> None:
        """Restore every file apply_changes attempted to write.

        Files that did not exist are deleted, others get their original
        content back. Failures are logged and do not stop the rollback.
        """
        for name in reversed(self._attempted):
            original = self._originals.get(name)
            try:
                if original is None:
                    try:
                        self._remote.delete_file(self.project_id, name)
                    except NotFoundError:
                        pass
                else:
                    self._remote.create_or_update_file(self.project_id, name, original)
                self._remember(name, original)
                logger.info("Rolled back %s in %s", name, self.project_id)
            except Exception:
                logger.exception("Rollback of %s in %s failed", name, self.project_id)
        self._attempted.clear()

    # === Helpers for subclasses ===

    def _reset(self) -> None:
        self._computed = None
        self._originals = {}
        self._expected = {}
        self._attempted = []

    def _finish(self, changes: dict[str, str]) -> dict[str, str]:
        self._computed = dict(changes)
        return dict(changes)

    def _capture(self, name: str) -> str | None:
        """Fetch a file's storage form and keep it for rollback.

        Returns:
            The display form, or None if the file does not exist.
        """
        remote_file = self._remote.get_file(self.project_id, name)
        stored = remote_file.source if remote_file is not None else None
        self._originals[name] = stored
        return self._transform.unwrap(stored) if stored is not None else None

    def _expect(self, name: str, expected_hash: str | None) -> None:
        """Set an explicit expected hash for a file (overrides the ledger)."""
        self._expected[name] = expected_hash

    def _remember(self, name: str, stored: str | None) -> None:
        if self._ledger is not None:
            self._ledger.record(self.project_id, name, stored)

    def _detect_collisions(self) -> CollisionInfo:
        stale: list[StaleFile] = []
        for name, live in self._originals.items():
            entry = self._ledger.get(self.project_id, name) if self._ledger else None
            if name in self._expected:
                expected = self._expected[name]
                previous = (
                    entry.content
                    if entry is not None and hashes_equal(entry.hash, expected)
                    else None
                )
            elif entry is not None:
                expected, previous = entry.hash, entry.content
            else:
                continue
            found = self._detector.stale_file(name, expected, live, previous)
            if found is not None:
                stale.append(found)
        return build_collision_info(stale)
