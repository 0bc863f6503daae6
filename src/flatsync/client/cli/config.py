"""Configuration utilities for the flatsync CLI.

This module provides shared configuration functions used across CLI commands.
The config file (``~/.flatsync/config.json``) holds the store URL, the
bearer token and an optional mirror root.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
import httpx

from flatsync.client.api import APIError, HTTPClient
from flatsync.client.concurrency.manager import ConcurrencyManager
from flatsync.client.concurrency.rate_limiter import ConcurrencyError
from flatsync.client.operations.base import OperationError
from flatsync.client.service import MirrorService
from flatsync.client.sync.types import SyncError
from flatsync.core.config import MIRROR_ROOT_ENV, RemoteConfig, SyncSettings


def get_config_dir() -> Path:
    """Get the configuration directory for flatsync.

    Returns:
        Path to ~/.flatsync.
    """
    return Path.home() / ".flatsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file (owner-only, it holds a token)."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))
    config_file.chmod(0o600)


def get_settings() -> SyncSettings:
    """Build sync settings from the environment and the config file.

    The environment wins over the config file for the mirror root. Project
    locks live under the config directory so concurrent commands share them.
    """
    settings = SyncSettings.from_env()
    settings.lock_dir = get_config_dir() / "locks"
    config = load_config()
    if config.get("mirror_root") and not os.environ.get(MIRROR_ROOT_ENV):
        settings.mirror_root = Path(config["mirror_root"]).expanduser()
    return settings


def require_remote_config() -> RemoteConfig:
    """Get the store connection settings, exiting if not configured."""
    config = load_config()
    if not config.get("server_url") or not config.get("auth_token"):
        click.echo(
            "Error: No remote store configured. "
            "Run 'flatsync config --server URL --token TOKEN' first.",
            err=True,
        )
        sys.exit(1)
    return RemoteConfig(server_url=config["server_url"], token=config["auth_token"])


@contextmanager
def open_service(use_git: bool = True) -> Iterator[MirrorService]:
    """Open a MirrorService on the configured store.

    Reinitializes the process-wide concurrency manager from the current
    settings and closes the HTTP client on exit.
    """
    remote_config = require_remote_config()
    manager = ConcurrencyManager.init(get_settings())
    with HTTPClient(remote_config) as client:
        yield MirrorService(client, manager=manager, use_git=use_git)


# Errors reported as "Error: ..." with exit code 1 instead of a traceback
HANDLED_ERRORS: tuple[type[Exception], ...] = (
    APIError,
    ConcurrencyError,
    OperationError,
    SyncError,
    httpx.HTTPError,
)
