"""Shared fixtures: fake clock, in-memory remote store, isolated managers."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from flatsync.client.concurrency import ConcurrencyManager
from flatsync.client.local import LocalMirror
from flatsync.core.config import SyncSettings
from tests.fakes import FakeClock, InMemoryRemote


@pytest.fixture(autouse=True)
def _isolate_concurrency_manager() -> Iterator[None]:
    """Drop the process-wide manager between tests."""
    ConcurrencyManager._instance = None
    yield
    ConcurrencyManager.reset_all()
    ConcurrencyManager._instance = None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def remote() -> InMemoryRemote:
    return InMemoryRemote()


@pytest.fixture
def settings(tmp_path: Path) -> SyncSettings:
    return SyncSettings(lock_timeout=2.0, mirror_root=tmp_path / "mirrors")


@pytest.fixture
def manager(settings: SyncSettings) -> ConcurrencyManager:
    return ConcurrencyManager.init(settings)


@pytest.fixture
def mirror(tmp_path: Path) -> LocalMirror:
    return LocalMirror(tmp_path / "mirror")
