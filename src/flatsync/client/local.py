"""Local git-tracked mirror of a remote project.

This module provides:
- LocalMirror: read / write / delete / scan files under a mirror root
- DEFAULT_IGNORE_PATTERNS: Names never treated as mirrored files

Flat remote names map one-to-one onto relative POSIX paths under the root
(``utils/strings`` on the remote is ``<root>/utils/strings`` locally).
Local files hold the display form of the content.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS = [
    ".git",
    ".DS_Store",
    "Thumbs.db",
    "*.tmp",
    "*.swp",
    "*.swo",
    "~*",
]


def _read(path: Path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


class MirrorPathError(ValueError):
    """A file name resolves outside the mirror root."""


class LocalMirror:
    """Files of one project under a local root directory."""

    def __init__(self, root: Path, ignore_patterns: list[str] | None = None) -> None:
        """Initialize the mirror.

        Args:
            root: Mirror root directory (created on first write).
            ignore_patterns: Extra fnmatch patterns to skip when scanning.
        """
        self._root = Path(root)
        self._patterns = list(DEFAULT_IGNORE_PATTERNS)
        self._undecodable: set[str] = set()
        if ignore_patterns:
            self._patterns.extend(ignore_patterns)

    @property
    def root(self) -> Path:
        """Mirror root directory."""
        return self._root

    def path_for(self, name: str) -> Path:
        """Resolve a flat name to a path under the root.

        Raises:
            MirrorPathError: If the name is empty, absolute or escapes the root.
        """
        if not name or name.startswith("/") or "\\" in name:
            raise MirrorPathError(f"Invalid file name: {name!r}")
        parts = name.split("/")
        if any(part in ("", ".", "..") for part in parts):
            raise MirrorPathError(f"Invalid file name: {name!r}")
        return self._root.joinpath(*parts)

    def should_ignore(self, rel_path: str) -> bool:
        """Check whether a relative path is excluded from the mirror."""
        parts = rel_path.split("/")
        for pattern in self._patterns:
            if any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True
        return False

    def excludes(self, name: str) -> bool:
        """Check whether a name is left out of sync on both sides.

        Covers ignored names and files the last scan() could not decode,
        so a remote file under such a name is never planned against an
        absent local copy.
        """
        return self.should_ignore(name) or name in self._undecodable

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def read(self, name: str) -> str | None:
        """Read a file.

        Returns:
            The content, or None if the file does not exist.
        """
        try:
            return _read(self.path_for(name))
        except FileNotFoundError:
            return None

    def write(self, name: str, content: str) -> None:
        """Create or replace a file, creating parent directories."""
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        # newline="" keeps the content byte-for-byte (no CRLF translation)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        logger.debug("Wrote %s (%d chars)", path, len(content))

    def delete(self, name: str) -> bool:
        """Delete a file and prune directories it leaves empty.

        Returns:
            True if a file was removed, False if it did not exist.
        """
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug("Deleted %s", path)
        self._prune_empty_dirs(path.parent)
        return True

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self._root and self._root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    def scan(self) -> dict[str, str]:
        """Read every mirrored file.

        Returns:
            Mapping of flat name to display-form content, skipping ignored
            names, symlinks and files that are not valid UTF-8 text.
        """
        files: dict[str, str] = {}
        self._undecodable = set()
        if not self._root.is_dir():
            return files

        for dirpath, dirnames, filenames in os.walk(self._root):
            current = Path(dirpath)
            rel_dir = current.relative_to(self._root).as_posix()
            prefix = "" if rel_dir == "." else rel_dir + "/"

            dirnames[:] = sorted(
                d
                for d in dirnames
                if not self.should_ignore(prefix + d) and not (current / d).is_symlink()
            )
            for filename in sorted(filenames):
                rel = prefix + filename
                full = current / filename
                if self.should_ignore(rel) or full.is_symlink():
                    continue
                try:
                    files[rel] = _read(full)
                except UnicodeDecodeError:
                    logger.warning("Skipping %s: not UTF-8 text", full)
                    self._undecodable.add(rel)

        logger.debug("Scanned %d file(s) under %s", len(files), self._root)
        return files

    @property
    def undecodable(self) -> set[str]:
        """Names the last scan() skipped because they are not UTF-8 text."""
        return set(self._undecodable)
