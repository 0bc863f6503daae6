"""HTTP client for the remote project store API.

This module provides:
- HTTPClient: httpx-based client for the flat-namespace project store
- RemoteFile: File content and metadata as returned by the store
- APIError hierarchy mapped from HTTP status codes

Endpoints:
    GET    /health
    GET    /api/projects/{project_id}/files
    GET    /api/projects/{project_id}/files/{name}
    PUT    /api/projects/{project_id}/files/{name}
    DELETE /api/projects/{project_id}/files/{name}
    PATCH  /api/projects/{project_id}/files         (batch upsert/delete)

The store has no directories: ``name`` is an opaque flat key and is
URL-encoded as a single path segment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from flatsync.client.concurrency.rate_limiter import QuotaExceededError
from flatsync.core.config import RemoteConfig
from flatsync.core.hashing import git_blob_sha1

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60  # seconds, when a 429 carries no Retry-After header


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


@dataclass
class RemoteFile:
    """A file in the remote store.

    Attributes:
        name: Flat file name (unique within the project).
        source: Content in storage form.
        file_type: Store-specific type tag (e.g. "SERVER_JS", "HTML").
        updated_at: Last modification time reported by the store.
    """

    name: str
    source: str
    file_type: str | None = None
    updated_at: datetime | None = None

    @property
    def hash(self) -> str:
        """Git blob SHA-1 of the storage form."""
        return git_blob_sha1(self.source)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFile:
        """Create from API response dictionary."""
        return cls(
            name=data["name"],
            source=data.get("source") or "",
            file_type=data.get("type"),
            updated_at=(
                datetime.fromisoformat(data["update_time"])
                if data.get("update_time")
                else None
            ),
        )


def _file_url(project_id: str, name: str) -> str:
    return f"/api/projects/{quote(project_id, safe='')}/files/{quote(name, safe='')}"


def _files_url(project_id: str) -> str:
    return f"/api/projects/{quote(project_id, safe='')}/files"


class HTTPClient:
    """HTTP client for the remote project store.

    Usage:
        with HTTPClient(RemoteConfig(server_url, token)) as client:
            files = client.list_files("project-id")
    """

    def __init__(self, config: RemoteConfig) -> None:
        """Initialize the client.

        Args:
            config: Connection settings (URL, token, timeout, SSL).
        """
        self._config = config
        self._client = httpx.Client(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Authorization": f"Bearer {config.token}"},
        )

    @property
    def config(self) -> RemoteConfig:
        """Connection settings."""
        return self._config

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "")
            raise QuotaExceededError(
                "Remote store rejected the request (quota)",
                int(retry_after) if retry_after.isdigit() else DEFAULT_RETRY_AFTER,
            )
        if response.status_code >= 400:
            raise APIError(self._error_detail(response), response.status_code)
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            return str(response.json().get("detail", "Unknown error"))
        except ValueError:
            return response.text or f"HTTP {response.status_code}"

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the store is reachable.

        Returns:
            True if the store answered 200.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === File operations ===

    def list_files(self, project_id: str) -> list[RemoteFile]:
        """List all files of a project, with content.

        Args:
            project_id: Remote project identifier.

        Returns:
            Files in the order the store returns them.
        """
        response = self._handle_response(self._client.get(_files_url(project_id)))
        return [RemoteFile.from_dict(f) for f in response.json()]

    def get_file(self, project_id: str, name: str) -> RemoteFile | None:
        """Get one file.

        Args:
            project_id: Remote project identifier.
            name: Flat file name.

        Returns:
            The file, or None if it does not exist.
        """
        try:
            response = self._handle_response(self._client.get(_file_url(project_id, name)))
        except NotFoundError:
            return None
        return RemoteFile.from_dict(response.json())

    def create_or_update_file(
        self,
        project_id: str,
        name: str,
        content: str,
        file_type: str | None = None,
    ) -> RemoteFile:
        """Create a file or replace its content.

        Args:
            project_id: Remote project identifier.
            name: Flat file name.
            content: Storage-form content.
            file_type: Optional store type tag.

        Returns:
            The stored file.
        """
        payload: dict[str, Any] = {"source": content}
        if file_type:
            payload["type"] = file_type
        response = self._handle_response(
            self._client.put(_file_url(project_id, name), json=payload)
        )
        logger.debug("Stored %s/%s (%d chars)", project_id, name, len(content))
        return RemoteFile.from_dict(response.json())

    def delete_file(self, project_id: str, name: str) -> None:
        """Delete a file.

        Raises:
            NotFoundError: If the file does not exist.
        """
        self._handle_response(self._client.delete(_file_url(project_id, name)))
        logger.debug("Deleted %s/%s", project_id, name)

    def update_files(
        self,
        project_id: str,
        upserts: dict[str, str],
        deletes: list[str],
    ) -> list[RemoteFile]:
        """Apply several writes in one request.

        The store applies the batch in one call but gives no atomicity
        guarantee: on error, some files may already be written.

        Args:
            project_id: Remote project identifier.
            upserts: name -> storage-form content to create or replace.
            deletes: Names to delete.

        Returns:
            The project's files after the batch.
        """
        response = self._handle_response(
            self._client.patch(
                _files_url(project_id),
                json={
                    "upsert": [{"name": n, "source": c} for n, c in upserts.items()],
                    "delete": list(deletes),
                },
            )
        )
        logger.debug(
            "Batch on %s: %d upsert(s), %d delete(s)", project_id, len(upserts), len(deletes)
        )
        return [RemoteFile.from_dict(f) for f in response.json()]
