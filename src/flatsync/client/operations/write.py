"""Create or replace one file."""

from __future__ import annotations

import logging

from flatsync.client.operations.base import (
    FileOperationStrategy,
    ValidationError,
    validate_file_name,
)
from flatsync.client.operations.collision import ReadLedger
from flatsync.client.remote import IDENTITY, ContentTransform, RemoteClient
from flatsync.core.types import OperationType

logger = logging.getLogger(__name__)


class WriteStrategy(FileOperationStrategy):
    """Write display-form content to one file, creating it if needed.

    Rolling back restores the previous content, or deletes the file when
    the write created it.
    """

    def __init__(
        self,
        project_id: str,
        remote: RemoteClient,
        name: str,
        content: str,
        *,
        expected_hash: str | None = None,
        transform: ContentTransform = IDENTITY,
        ledger: ReadLedger | None = None,
    ) -> None:
        """Initialize a write.

        Args:
            project_id: Remote project.
            remote: Remote client.
            name: Flat file name.
            content: New display-form content (must not be empty).
            expected_hash: Storage hash the caller last saw; when given it
                takes precedence over the ledger for collision detection.
            transform: Display/storage content mapping.
            ledger: Last-read hashes.
        """
        super().__init__(project_id, remote, transform=transform, ledger=ledger)
        self.name = name
        self.content = content
        self.expected_hash = expected_hash
        self.created = False

    def get_type(self) -> OperationType:
        return OperationType.WRITE

    def compute_changes(self) -> dict[str, str]:
        self._reset()
        validate_file_name("name", self.name)
        if not isinstance(self.content, str) or self.content == "":
            raise ValidationError(
                "content", self.content, "non-empty text (use delete to remove a file)"
            )
        if self.expected_hash is not None:
            self._expect(self.name, self.expected_hash)

        current = self._capture(self.name)
        self.created = current is None
        logger.debug("Write %s: %s", self.name, "create" if self.created else "replace")
        return self._finish({self.name: self.content})

    def describe(self) -> str:
        verb = "Create" if self.created else "Update"
        return f"{verb} {self.name}"
