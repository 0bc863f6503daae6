"""Tests for CLI commands - config, plan, sync and file commands."""

import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from flatsync.client.cli import cli
from flatsync.client.concurrency import LockManager
from flatsync.core.config import LOCK_TIMEOUT_ENV, MIRROR_ROOT_ENV
from flatsync.core.hashing import git_blob_sha1

FILES_URL = "http://test/api/projects/p1/files"


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the CLI at a temporary config directory."""
    monkeypatch.delenv(MIRROR_ROOT_ENV, raising=False)
    config = tmp_path / ".flatsync"
    config.mkdir()
    with patch("flatsync.client.cli.config.get_config_dir", return_value=config):
        yield config


@pytest.fixture
def configured(config_dir: Path, tmp_path: Path) -> Path:
    """Write a config pointing at http://test; returns the mirror root."""
    mirrors = tmp_path / "mirrors"
    (config_dir / "config.json").write_text(
        json.dumps(
            {"server_url": "http://test", "auth_token": "tok", "mirror_root": str(mirrors)}
        )
    )
    return mirrors


class TestConfigCommand:
    """Tests for 'flatsync config'."""

    def test_save(self, runner: CliRunner, config_dir: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            cli,
            ["config", "--server", "https://store.example.com/", "--token", "secret"],
        )

        assert result.exit_code == 0
        assert "Configuration saved." in result.output
        saved = json.loads((config_dir / "config.json").read_text())
        assert saved == {"server_url": "https://store.example.com", "auth_token": "secret"}
        assert (config_dir / "config.json").stat().st_mode & 0o777 == 0o600

    def test_show_hides_token(self, runner: CliRunner, configured: Path) -> None:
        result = runner.invoke(cli, ["config"])

        assert result.exit_code == 0
        assert "Server: http://test" in result.output
        assert "Token: (set)" in result.output
        assert "tok\n" not in result.output
        assert f"Mirror root: {configured}" in result.output

    def test_mirror_root_env_wins(
        self, runner: CliRunner, configured: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(MIRROR_ROOT_ENV, str(tmp_path / "elsewhere"))
        result = runner.invoke(cli, ["config"])
        assert f"Mirror root: {tmp_path / 'elsewhere'}" in result.output


class TestNotConfigured:
    """Commands without a configured store."""

    def test_cat_requires_config(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["cat", "p1", "Code"])
        assert result.exit_code == 1
        assert "No remote store configured" in result.output


class TestFileCommands:
    """Tests for cat / write / rm."""

    def test_cat(self, runner: CliRunner, configured: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url=f"{FILES_URL}/Code", json={"name": "Code", "source": "x = 1\n"})

        result = runner.invoke(cli, ["cat", "p1", "Code"])

        assert result.exit_code == 0
        assert result.output == "x = 1\n"

    def test_cat_missing(self, runner: CliRunner, configured: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url=f"{FILES_URL}/Code", status_code=404)

        result = runner.invoke(cli, ["cat", "p1", "Code"])

        assert result.exit_code == 1
        assert "Code not found in p1" in result.output

    def test_cat_hash(self, runner: CliRunner, configured: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url=f"{FILES_URL}/Code", json={"name": "Code", "source": "x = 1\n"})

        result = runner.invoke(cli, ["cat", "--hash", "p1", "Code"])

        assert result.exit_code == 0
        assert "x = 1\n" in result.output
        digest = git_blob_sha1("x = 1\n")
        assert f"hash: {digest}" in result.output

    def test_write_with_hash_from_cat_reports_collision(
        self, runner: CliRunner, configured: Path, httpx_mock  # type: ignore[no-untyped-def]
    ) -> None:
        """A hash printed by cat lets a later write detect a concurrent change."""
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code", method="GET", json={"name": "Code", "source": "base\n"}
        )
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code", method="GET", json={"name": "Code", "source": "theirs\n"}
        )
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code", method="PUT", json={"name": "Code", "source": "mine\n"}
        )

        read = runner.invoke(cli, ["cat", "--hash", "p1", "Code"])
        assert read.exit_code == 0
        seen = read.output.rsplit("hash: ", 1)[1].strip()
        assert seen == git_blob_sha1("base\n")

        result = runner.invoke(
            cli,
            ["--no-git", "write", "p1", "Code", "--expected-hash", seen],
            input="mine\n",
        )

        assert result.exit_code == 0, result.output
        assert "Update Code" in result.output
        assert "Warning: Use cat to refresh Code" in result.output
        assert (configured / "p1" / "Code").read_text() == "mine\n"

    def test_write_waits_for_lock_held_by_other_process(
        self, runner: CliRunner, configured: Path, config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Commands share project locks through the config directory."""
        monkeypatch.setenv(LOCK_TIMEOUT_ENV, "1")
        other = LockManager(lock_dir=config_dir / "locks")
        other.acquire_lock("p1", "sync push on p1")
        try:
            result = runner.invoke(cli, ["--no-git", "write", "p1", "Code"], input="hello\n")
        finally:
            other.release_all_locks()

        assert result.exit_code == 1
        assert "Timed out" in result.output
        assert "sync push on p1" in result.output
        assert not (configured / "p1" / "Code").exists()

    def test_write_from_stdin(self, runner: CliRunner, configured: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Writes go to the mirror first, then to the store."""
        httpx_mock.add_response(url=f"{FILES_URL}/Code", method="GET", status_code=404)
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code", method="PUT", json={"name": "Code", "source": "hello\n"}
        )

        result = runner.invoke(cli, ["--no-git", "write", "p1", "Code"], input="hello\n")

        assert result.exit_code == 0, result.output
        assert "Create Code" in result.output
        digest = git_blob_sha1("hello\n")
        assert f"Code: {digest[:8]}" in result.output
        assert (configured / "p1" / "Code").read_text() == "hello\n"

    def test_write_empty_rejected(self, runner: CliRunner, configured: Path) -> None:
        result = runner.invoke(cli, ["--no-git", "write", "p1", "Code"], input="")
        assert result.exit_code == 1
        assert "Invalid content" in result.output

    def test_rm_store_failure_rolls_back(
        self, runner: CliRunner, configured: Path, httpx_mock  # type: ignore[no-untyped-def]
    ) -> None:
        mirror_file = configured / "p1" / "Code"
        mirror_file.parent.mkdir(parents=True)
        mirror_file.write_text("keep\n")
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code", method="GET", json={"name": "Code", "source": "keep\n"}
        )
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code",
            method="DELETE",
            status_code=500,
            json={"detail": "store unavailable"},
        )
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code", method="PUT", json={"name": "Code", "source": "keep\n"}
        )

        result = runner.invoke(cli, ["--no-git", "rm", "p1", "Code"])

        assert result.exit_code == 1
        assert "failed and was rolled back" in result.output
        assert "store unavailable" in result.output
        assert mirror_file.read_text() == "keep\n"


class TestSyncCommands:
    """Tests for plan / sync."""

    def test_plan(self, runner: CliRunner, configured: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url=FILES_URL, json=[{"name": "Code", "source": "x"}])

        result = runner.invoke(cli, ["plan", "p1"])

        assert result.exit_code == 0
        assert "Plan (pull): +1 add (1 total)" in result.output
        assert "  + Code" in result.output
        assert not (configured / "p1" / "Code").exists()

    def test_sync_pull(self, runner: CliRunner, configured: Path, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        # Listed once to plan and once to check the plan under the lock
        for _ in range(2):
            httpx_mock.add_response(url=FILES_URL, json=[{"name": "Code", "source": "x"}])

        result = runner.invoke(cli, ["--no-git", "sync", "p1"])

        assert result.exit_code == 0, result.output
        assert "Applied: 1" in result.output
        assert "Baseline updated." in result.output
        assert (configured / "p1" / "Code").read_text() == "x"
        assert (configured / "p1" / ".git" / "sync-manifest.json").exists()

    def test_sync_push_failure_exits_nonzero(
        self, runner: CliRunner, configured: Path, httpx_mock  # type: ignore[no-untyped-def]
    ) -> None:
        local = configured / "p1" / "Code"
        local.parent.mkdir(parents=True)
        local.write_text("mine")
        for _ in range(2):
            httpx_mock.add_response(url=FILES_URL, json=[])
        httpx_mock.add_response(
            url=f"{FILES_URL}/Code", method="PUT", status_code=500, json={"detail": "boom"}
        )

        result = runner.invoke(cli, ["--no-git", "sync", "p1", "--direction", "push"])

        assert result.exit_code == 1
        assert "Failed: Code: boom" in result.output
        assert "Baseline updated." not in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
