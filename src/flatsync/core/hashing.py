"""Git-compatible content hashing.

Hashes are computed the way ``git hash-object`` does for a blob:
``sha1("blob <size>\\0" + content)``. Content is normalized first (CRLF to LF,
UTF-8 BOM stripped) so that the same hash can be recomputed by external
tooling on any platform.

Hashes are always taken over the *storage form* of a file (the content as
the remote store keeps it), never over the unwrapped display form.
"""

from __future__ import annotations

import hashlib
import re

_SHA1_RE = re.compile(r"^[a-f0-9]{40}$")


def normalize_for_hashing(content: str) -> str:
    """Normalize content for consistent hashing across platforms.

    Strips a leading UTF-8 BOM and converts CRLF line endings to LF.
    Trailing newlines are left untouched.
    """
    if content.startswith("\ufeff"):
        content = content[1:]
    return content.replace("\r\n", "\n")


def git_blob_sha1(content: str) -> str:
    """Compute the git blob SHA-1 of normalized content.

    Args:
        content: File content (storage form).

    Returns:
        40-character lowercase hex digest, identical to ``git hash-object``.
    """
    data = normalize_for_hashing(content).encode("utf-8")
    sha = hashlib.sha1()
    sha.update(f"blob {len(data)}\0".encode())
    sha.update(data)
    return sha.hexdigest()


def is_valid_git_sha1(value: str) -> bool:
    """Check that a string looks like a git SHA-1 (40 lowercase hex chars)."""
    return bool(_SHA1_RE.match(value))


def hashes_equal(left: str | None, right: str | None) -> bool:
    """Compare two hashes case-insensitively; ``None`` only equals ``None``."""
    if left is None or right is None:
        return left is right
    return left.lower() == right.lower()
