"""Rename a file (the store has no native move)."""

from __future__ import annotations

from flatsync.client.operations.base import (
    DELETE_MARKER,
    FileOperationError,
    FileOperationStrategy,
    ValidationError,
    validate_file_name,
)
from flatsync.client.operations.collision import ReadLedger
from flatsync.client.remote import IDENTITY, ContentTransform, RemoteClient
from flatsync.core.types import OperationType


class MoveStrategy(FileOperationStrategy):
    """Move ``source`` to ``destination``.

    Expressed as ``{source: "", destination: content}``: the destination is
    written first, then the source deleted. Rolling back deletes a
    destination the move created (or restores the one it overwrote) and
    recreates the source.
    """

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
        return OperationType.MOVE

    def compute_changes(self) -> dict[str, str]:
        self._reset()
        validate_file_name("source", self.source)
        validate_file_name("destination", self.destination)
        if self.source == self.destination:
            raise ValidationError("destination", self.destination, "a name different from source")

        content = self._capture(self.source)
        if content is None:
            raise FileOperationError("move", self.source, "source file not found")
        if content == DELETE_MARKER:
            raise FileOperationError("move", self.source, "source file is empty")
        if self._capture(self.destination) is not None and not self.overwrite:
            raise FileOperationError(
                "move", self.source, f"destination {self.destination} already exists"
            )
        return self._finish({self.source: DELETE_MARKER, self.destination: content})

    def describe(self) -> str:
        return f"Move {self.source} to {self.destination}"
