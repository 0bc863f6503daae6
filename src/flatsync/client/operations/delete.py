"""Delete one file."""

from __future__ import annotations

from flatsync.client.operations.base import (
    DELETE_MARKER,
    FileOperationError,
    FileOperationStrategy,
    validate_file_name,
)
from flatsync.client.operations.collision import ReadLedger
from flatsync.client.remote import IDENTITY, ContentTransform, RemoteClient
from flatsync.core.types import OperationType


class DeleteStrategy(FileOperationStrategy):
    """Remove a file; rolling back recreates it with its old content."""

    def __init__(
        self,
        project_id: str,
        remote: RemoteClient,
        name: str,
        *,
        transform: ContentTransform = IDENTITY,
        ledger: ReadLedger | None = None,
    ) -> None:
        super().__init__(project_id, remote, transform=transform, ledger=ledger)
        self.name = name

    def get_type(self) -> OperationType:
        return OperationType.DELETE

    def compute_changes(self) -> dict[str, str]:
        self._reset()
        validate_file_name("name", self.name)
        if self._capture(self.name) is None:
            raise FileOperationError("delete", self.name, "file not found")
        return self._finish({self.name: DELETE_MARKER})
