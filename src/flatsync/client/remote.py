"""Remote client abstraction and admission control.

This module provides:
- RemoteClient: Protocol every remote store client implements
- BatchRemoteClient: Optional multi-file write capability
- ContentTransform: Opaque storage-form <-> display-form mapping
- RateLimitedRemote: Wrapper charging the rate limiter before every call

All code that talks to the remote store goes through RateLimitedRemote, so
the process-wide quota is enforced regardless of which project is targeted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from flatsync.client.api import RemoteFile
from flatsync.client.concurrency.rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)


def _identity(content: str) -> str:
    return content


@dataclass(frozen=True)
class ContentTransform:
    """Pure mapping between the two content forms.

    Attributes:
        wrap: Display form (local) -> storage form (remote).
        unwrap: Storage form (remote) -> display form (local).
    """

    wrap: Callable[[str], str] = _identity
    unwrap: Callable[[str], str] = _identity


IDENTITY = ContentTransform()


class RemoteClient(Protocol):
    """Operations consumed from the remote flat-file store."""

    def list_files(self, project_id: str) -> list[RemoteFile]: ...

    def get_file(self, project_id: str, name: str) -> RemoteFile | None: ...

    def create_or_update_file(
        self, project_id: str, name: str, content: str
    ) -> RemoteFile: ...

    def delete_file(self, project_id: str, name: str) -> None: ...


@runtime_checkable
class BatchRemoteClient(Protocol):
    """A remote client that can write several files in one call."""

    def update_files(
        self, project_id: str, upserts: dict[str, str], deletes: list[str]
    ) -> list[RemoteFile]: ...


class RateLimitedRemote:
    """RemoteClient wrapper that charges the rate limiter per call.

    ``check_limit()`` raises QuotaExceededError before the wrapped client
    is touched, so a rejected call never reaches the network.
    """

    def __init__(self, client: RemoteClient, limiter: TokenBucketRateLimiter) -> None:
        self._client = client
        self._limiter = limiter

    @property
    def client(self) -> RemoteClient:
        """The wrapped client."""
        return self._client

    @property
    def supports_batch(self) -> bool:
        """Whether the wrapped client implements update_files."""
        return isinstance(self._client, BatchRemoteClient)

    def list_files(self, project_id: str) -> list[RemoteFile]:
        self._limiter.check_limit()
        return self._client.list_files(project_id)

    def get_file(self, project_id: str, name: str) -> RemoteFile | None:
        self._limiter.check_limit()
        return self._client.get_file(project_id, name)

    def create_or_update_file(self, project_id: str, name: str, content: str) -> RemoteFile:
        self._limiter.check_limit()
        return self._client.create_or_update_file(project_id, name, content)

    def delete_file(self, project_id: str, name: str) -> None:
        self._limiter.check_limit()
        self._client.delete_file(project_id, name)

    def update_files(
        self, project_id: str, upserts: dict[str, str], deletes: list[str]
    ) -> list[RemoteFile]:
        """Batch write through the wrapped client (one token per batch).

        Raises:
            TypeError: If the wrapped client has no batch support.
        """
        if not isinstance(self._client, BatchRemoteClient):
            raise TypeError(f"{type(self._client).__name__} does not support batch writes")
        self._limiter.check_limit()
        return self._client.update_files(project_id, upserts, deletes)
