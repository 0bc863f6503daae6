"""Exact-text replacements inside one file."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from flatsync.client.operations.base import (
    FileOperationError,
    FileOperationStrategy,
    OperationResult,
    ValidationError,
    validate_file_name,
)
from flatsync.client.operations.collision import ReadLedger
from flatsync.client.remote import IDENTITY, ContentTransform, RemoteClient
from flatsync.core.types import OperationType

logger = logging.getLogger(__name__)

MAX_EDITS = 20
_WHITESPACE_RE = re.compile(r"(\s+)")


@dataclass(frozen=True)
class Edit:
    """Replace ``old_text`` with ``new_text``.

    Attributes:
        old_text: Text to find (must be non-empty).
        new_text: Replacement.
        index: Which occurrence to replace (0-based). Required when
            ``old_text`` occurs more than once.
    """

    old_text: str
    new_text: str
    index: int | None = None


def _find_spans(content: str, needle: str, fuzzy: bool) -> list[tuple[int, int]]:
    if not fuzzy:
        spans = []
        pos = content.find(needle)
        while pos != -1:
            spans.append((pos, pos + len(needle)))
            pos = content.find(needle, pos + len(needle))
        return spans

    # Every whitespace run in the needle matches any whitespace run.
    pattern = "".join(
        r"\s+" if _WHITESPACE_RE.fullmatch(part) else re.escape(part)
        for part in _WHITESPACE_RE.split(needle)
        if part
    )
    return [m.span() for m in re.finditer(pattern, content)]


def _preview(text: str) -> str:
    return text[:50] + ("..." if len(text) > 50 else "")


class EditStrategy(FileOperationStrategy):
    """Apply an ordered list of edits to an existing file.

    Each edit is applied to the result of the previous one. Rolling back
    restores the original content.
    """

    def __init__(
        self,
        project_id: str,
        remote: RemoteClient,
        name: str,
        edits: list[Edit],
        *,
        fuzzy_whitespace: bool = False,
        expected_hash: str | None = None,
        transform: ContentTransform = IDENTITY,
        ledger: ReadLedger | None = None,
    ) -> None:
        """Initialize an edit.

        Args:
            project_id: Remote project.
            remote: Remote client.
            name: Flat file name (must exist).
            edits: 1 to 20 replacements, applied in order.
            fuzzy_whitespace: Match any whitespace run against any other.
            expected_hash: Storage hash the caller last saw.
            transform: Display/storage content mapping.
            ledger: Last-read hashes.
        """
        super().__init__(project_id, remote, transform=transform, ledger=ledger)
        self.name = name
        self.edits = list(edits)
        self.fuzzy_whitespace = fuzzy_whitespace
        self.expected_hash = expected_hash
        self.edits_applied = 0

    def get_type(self) -> OperationType:
        return OperationType.EDIT

    def compute_changes(self) -> dict[str, str]:
        self._reset()
        validate_file_name("name", self.name)
        if not self.edits:
            raise ValidationError("edits", self.edits, "at least one edit operation")
        if len(self.edits) > MAX_EDITS:
            raise ValidationError(
                "edits", len(self.edits), f"at most {MAX_EDITS} edit operations per call"
            )
        for edit in self.edits:
            if not edit.old_text:
                raise ValidationError("old_text", edit.old_text, "non-empty text to replace")
            if edit.index is not None and edit.index < 0:
                raise ValidationError("index", edit.index, "a non-negative occurrence index")
        if self.expected_hash is not None:
            self._expect(self.name, self.expected_hash)

        content = self._capture(self.name)
        if content is None:
            raise FileOperationError("edit", self.name, "file not found")

        self.edits_applied = 0
        for position, edit in enumerate(self.edits, start=1):
            content = self._apply_one(content, edit, position)
            self.edits_applied += 1

        if content == "":
            raise FileOperationError("edit", self.name, "edits would leave the file empty")
        logger.debug("Computed %d edit(s) on %s", self.edits_applied, self.name)
        return self._finish({self.name: content})

    def _apply_one(self, content: str, edit: Edit, position: int) -> str:
        label = f"edit ({position})"
        spans = _find_spans(content, edit.old_text, self.fuzzy_whitespace)
        if not spans:
            raise FileOperationError(
                label, self.name, f'Text not found: "{_preview(edit.old_text)}"'
            )
        if len(spans) > 1 and edit.index is None:
            raise FileOperationError(
                label,
                self.name,
                f"Found {len(spans)} occurrences of text. "
                "Specify 'index' to choose which one (0-based).",
            )
        target = edit.index or 0
        if target >= len(spans):
            raise FileOperationError(
                label,
                self.name,
                f"Index {target} out of range (found {len(spans)} occurrences)",
            )
        start, end = spans[target]
        return content[:start] + edit.new_text + content[end:]

    def apply_changes(self, validated: dict[str, str]) -> OperationResult:
        result = super().apply_changes(validated)
        result.details["edits_applied"] = self.edits_applied
        return result

    def describe(self) -> str:
        count = len(self.edits)
        return f"Edit {self.name}: {count} edit{'s' if count != 1 else ''}"
