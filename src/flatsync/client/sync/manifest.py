"""Persisted sync baseline.

The manifest records, per path, the storage hash both trees agreed on at
the last successful sync. It lives inside the mirror's git directory so it
is never mirrored itself:

    <mirror root>/.git/sync-manifest.json

A missing manifest means the mirror was never synced (bootstrap): the
planner then has no baseline and never schedules deletions.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from flatsync.core.types import SyncDirection

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "2.1"
MANIFEST_FILENAME = "sync-manifest.json"


@dataclass(frozen=True)
class ManifestEntry:
    """Baseline of one path.

    Attributes:
        path: Flat file name.
        hash: Storage hash agreed on at the last sync.
        synced_at: ISO-8601 time the hash was recorded.
    """

    path: str
    hash: str
    synced_at: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncManifest:
    """Load, update and save the baseline of one mirror root."""

    def __init__(self, root: Path, project_id: str = "") -> None:
        """Initialize the manifest (nothing is read until load()).

        Args:
            root: Mirror root directory.
            project_id: Remote project the mirror tracks.
        """
        self._path = Path(root) / ".git" / MANIFEST_FILENAME
        self.project_id = project_id
        self._entries: dict[str, ManifestEntry] = {}
        self.last_sync_timestamp: str | None = None
        self.last_sync_direction: SyncDirection | None = None
        self.last_sync_commit: str | None = None

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    @property
    def is_bootstrap(self) -> bool:
        """True until a sync has been recorded."""
        return self.last_sync_timestamp is None

    def load(self) -> bool:
        """Read the manifest from disk.

        Returns:
            True if a manifest existed, False on bootstrap.

        Raises:
            ValueError: If the file is not a valid manifest.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No manifest at %s, bootstrap sync", self._path)
            self._entries = {}
            return False

        data: dict[str, Any] = json.loads(raw)
        if data.get("version") != MANIFEST_VERSION:
            logger.warning(
                "Manifest version mismatch: expected %s, got %s",
                MANIFEST_VERSION,
                data.get("version"),
            )
        files = data.get("files")
        if not isinstance(files, dict):
            raise ValueError(f"Invalid manifest {self._path}: 'files' must be an object")

        self.project_id = data.get("project_id", self.project_id)
        self.last_sync_timestamp = data.get("last_sync_timestamp")
        direction = data.get("last_sync_direction")
        self.last_sync_direction = SyncDirection(direction) if direction else None
        self.last_sync_commit = data.get("last_sync_commit")
        self._entries = {
            path: ManifestEntry(path=path, hash=info["hash"], synced_at=info["synced_at"])
            for path, info in files.items()
        }
        logger.debug("Loaded manifest for %s, %d file(s) tracked", self.project_id, len(self))
        return True

    def save(self) -> None:
        """Write the manifest (owner-only permissions)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": MANIFEST_VERSION,
            "project_id": self.project_id,
            "last_sync_timestamp": self.last_sync_timestamp,
            "last_sync_direction": (
                self.last_sync_direction.value if self.last_sync_direction else None
            ),
            "last_sync_commit": self.last_sync_commit,
            "files": {
                path: {"hash": entry.hash, "synced_at": entry.synced_at}
                for path, entry in sorted(self._entries.items())
            },
        }
        tmp = self._path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.chmod(tmp, 0o600)
        os.replace(tmp, self._path)
        logger.info("Saved manifest for %s, %d file(s) tracked", self.project_id, len(self))

    def delete(self) -> None:
        """Remove the manifest, returning the mirror to bootstrap."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        self._entries = {}
        self.last_sync_timestamp = None
        self.last_sync_direction = None
        self.last_sync_commit = None
        logger.info("Deleted manifest at %s", self._path)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def get(self, path: str) -> ManifestEntry | None:
        return self._entries.get(path)

    def entries(self) -> list[ManifestEntry]:
        return [self._entries[p] for p in sorted(self._entries)]

    def hashes(self) -> dict[str, str]:
        """Baseline as path -> hash (the planner's input)."""
        return {path: entry.hash for path, entry in self._entries.items()}

    def update(
        self,
        hashes: dict[str, str],
        direction: SyncDirection,
        commit: str | None = None,
    ) -> None:
        """Replace the baseline after a fully successful sync.

        Entries whose hash did not change keep their original ``synced_at``.
        Call save() to persist.
        """
        now = _now()
        entries: dict[str, ManifestEntry] = {}
        for path, file_hash in hashes.items():
            previous = self._entries.get(path)
            if previous is not None and previous.hash == file_hash:
                entries[path] = previous
            else:
                entries[path] = ManifestEntry(path=path, hash=file_hash, synced_at=now)
        self._entries = entries
        self.last_sync_timestamp = now
        self.last_sync_direction = direction
        self.last_sync_commit = commit
