"""Local commit and validation hooks.

Between computing an operation and writing it remotely, the orchestrator
writes the new content into the local mirror and commits it. Committing
runs the repository's hooks (formatters, linters), which may rewrite or
reject the files. The orchestrator then reads the files back and sends
what the hooks left behind.

This module provides:
- HookPipeline: Protocol for the commit step
- GitHookPipeline: ``git add`` + ``git commit`` in the mirror, ``git revert``
  to undo
- NullHookPipeline: No-op pipeline for mirrors without git
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from flatsync.client.operations.base import OperationError

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = "flatsync"
DEFAULT_USER_EMAIL = "flatsync@localhost"


class HookError(OperationError):
    """The commit step failed (hook rejection or git error).

    Attributes:
        command: The git arguments that failed.
        stderr: Captured error output.
    """

    def __init__(self, message: str, command: list[str] | None = None, stderr: str = "") -> None:
        self.command = command or []
        self.stderr = stderr
        super().__init__(f"{message}: {stderr.strip()}" if stderr.strip() else message)


class HookPipeline(Protocol):
    """Commits pending files so validation hooks run on them."""

    def commit(self, paths: list[str], message: str) -> str | None:
        """Stage and commit paths.

        Returns:
            The commit identifier, or None when there was nothing to commit.

        Raises:
            HookError: If a hook rejects the commit.
        """
        ...

    def revert(self, commit: str) -> None:
        """Undo a commit made by ``commit``."""
        ...


class NullHookPipeline:
    """Pipeline that commits nothing and validates nothing."""

    def commit(self, paths: list[str], message: str) -> str | None:
        return None

    def revert(self, commit: str) -> None:
        return None


class GitHookPipeline:
    """Runs git in a mirror directory.

    Usage:
        pipeline = GitHookPipeline(mirror.root)
        commit = pipeline.commit(["Code.gs"], "Update Code.gs")
    """

    def __init__(self, root: Path, git: str = "git") -> None:
        """Initialize the pipeline.

        Args:
            root: Mirror root (the git work tree).
            git: git executable.
        """
        self._root = Path(root)
        self._git = git

    @property
    def root(self) -> Path:
        return self._root

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        command = [self._git, *args]
        try:
            result = subprocess.run(
                command,
                cwd=self._root,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise HookError(f"Failed to run {self._git}", command, str(e)) from e
        if check and result.returncode != 0:
            raise HookError(f"git {args[0]} failed", command, result.stderr or result.stdout)
        return result

    def ensure_repository(self) -> bool:
        """Initialize the repository if needed.

        A local identity is configured when none is set, so commits work on
        machines without a global git config.

        Returns:
            True if a new repository was created.
        """
        self._root.mkdir(parents=True, exist_ok=True)
        if (self._root / ".git" / "HEAD").exists():
            return False
        self._run("init")
        if self._run("config", "user.name", check=False).returncode != 0:
            self._run("config", "user.name", DEFAULT_USER_NAME)
        if self._run("config", "user.email", check=False).returncode != 0:
            self._run("config", "user.email", DEFAULT_USER_EMAIL)
        logger.info("Initialized git repository in %s", self._root)
        return True

    def commit(self, paths: list[str], message: str) -> str | None:
        self.ensure_repository()
        # git rejects pathspecs matching nothing: keep existing or tracked paths.
        tracked = self._run("ls-files", "--", *paths).stdout.splitlines()
        present = [p for p in paths if (self._root / p).exists()]
        to_stage = sorted(set(present) | set(tracked))
        if not to_stage:
            return None

        self._run("add", "-A", "--", *to_stage)
        staged = self._run("diff", "--cached", "--quiet", "--", *to_stage, check=False)
        if staged.returncode == 0:
            logger.debug("Nothing to commit for %s", ", ".join(to_stage))
            return None

        try:
            self._run("commit", "-m", message, "--", *to_stage)
        except HookError:
            # Leave the index as it was before this commit attempt.
            self._run("reset", "-q", "--", *to_stage, check=False)
            raise
        commit = self._run("rev-parse", "HEAD").stdout.strip()
        logger.info("Committed %s: %s", commit[:8], message)
        return commit

    def revert(self, commit: str) -> None:
        self._run("revert", "--no-edit", commit)
        logger.info("Reverted commit %s", commit[:8])
