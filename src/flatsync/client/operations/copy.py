"""Duplicate a file under a new name."""

from __future__ import annotations

from flatsync.client.operations.base import (
    FileOperationError,
    FileOperationStrategy,
    ValidationError,
    validate_file_name,
)
from flatsync.client.operations.collision import ReadLedger
from flatsync.client.remote import IDENTITY, ContentTransform, RemoteClient
from flatsync.core.types import OperationType


class CopyStrategy(FileOperationStrategy):
    """Copy ``source`` to ``destination``; only the destination changes."""

    def __init__(
        self,
        project_id: str,
        remote: RemoteClient,
        source: str,
        destination: str,
        *,
        overwrite: bool = False,
        transform: ContentTransform = IDENTITY,
        ledger: ReadLedger | None = None,
    ) -> None:
        super().__init__(project_id, remote, transform=transform, ledger=ledger)
        self.source = source
        self.destination = destination
        self.overwrite = overwrite

    def get_type(self) -> OperationType:
        return OperationType.COPY

    def compute_changes(self) -> dict[str, str]:
        self._reset()
        validate_file_name("source", self.source)
        validate_file_name("destination", self.destination)
        if self.source == self.destination:
            raise ValidationError("destination", self.destination, "a name different from source")

        # The source is only read, so it is not captured for rollback.
        source = self._remote.get_file(self.project_id, self.source)
        if source is None:
            raise FileOperationError("copy", self.source, "source file not found")
        if source.source == "":
            raise FileOperationError("copy", self.source, "source file is empty")
        if self._capture(self.destination) is not None and not self.overwrite:
            raise FileOperationError(
                "copy", self.source, f"destination {self.destination} already exists"
            )
        return self._finish({self.destination: self._transform.unwrap(source.source)})

    def describe(self) -> str:
        return f"Copy {self.source} to {self.destination}"
