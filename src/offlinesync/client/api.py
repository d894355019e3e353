"""HTTP client for the record backend.

This module provides:
- RecordService: Protocol consumed by the operation dispatcher
- RestRecordClient: httpx client for a PostgREST-style table API
- APIError hierarchy mapping HTTP/database errors to exceptions

Request shapes:
    insert:  POST   /rest/v1/<table>
    upsert:  POST   /rest/v1/<table>  (Prefer: resolution=merge-duplicates)
    update:  PATCH  /rest/v1/<table>?<col>=eq.<value>
    delete:  DELETE /rest/v1/<table>?<col>=eq.<value>
    fetch:   GET    /rest/v1/<table>?select=*&<col>=eq.<value>
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

from offlinesync.core.config import ServerConfig
from offlinesync.core.errors import ConflictDetected, OperationFailure

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

# Friendly messages for common backend error codes
ERROR_MESSAGES: dict[str, str] = {
    "23505": "This item already exists",
    "23503": "Referenced item does not exist",
    "42501": "Permission denied",
    "PGRST116": "No data found",
    "PGRST301": "Invalid request format",
}


class APIError(OperationFailure):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


class ConflictError(APIError, ConflictDetected):
    """Unique constraint violation."""

    def __init__(
        self,
        message: str,
        status_code: int | None = 409,
        code: str | None = UNIQUE_VIOLATION,
    ) -> None:
        APIError.__init__(self, message, status_code, code)
        self.server_data = None


class TransportFailure(APIError):
    """The request never got a response (DNS, connect, timeout...)."""


def describe_error(code: str | None, fallback: str) -> str:
    """Map a backend error code to a user-facing message."""
    if code and code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]
    return fallback


class RecordService(Protocol):
    """Record-oriented backend consumed by the dispatcher.

    Each write returns the affected rows. Uniqueness violations raise
    ConflictDetected; every other failure raises OperationFailure.
    """

    def insert(self, target: str, payload: Mapping[str, Any]) -> Any: ...

    def update(
        self, target: str, key: Mapping[str, Any], payload: Mapping[str, Any]
    ) -> Any: ...

    def delete(self, target: str, key: Mapping[str, Any]) -> Any: ...

    def upsert(self, target: str, payload: Mapping[str, Any]) -> Any: ...

    def fetch(self, target: str, key: Mapping[str, Any]) -> dict[str, Any] | None: ...


class RestRecordClient:
    """HTTP client for a PostgREST-style table API."""

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server configuration with URL, keys and settings.
            transport: Optional httpx transport (tests).
        """
        self._config = config
        self._client = httpx.Client(
            base_url=config.rest_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
            headers={
                "apikey": config.api_key,
                "Authorization": f"Bearer {config.bearer_token}",
                "Content-Type": "application/json",
            },
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> RestRecordClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TransportError as e:
            raise TransportFailure(f"{method} {path} failed: {e}") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        code = body.get("code")
        detail = body.get("message") or body.get("detail") or "Unknown error"

        if code == UNIQUE_VIOLATION or response.status_code == 409:
            raise ConflictError(describe_error(code, detail), response.status_code, code)
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401, code)
        if response.status_code == 404:
            raise NotFoundError(describe_error(code, "Resource not found"), 404, code)
        raise APIError(describe_error(code, detail), response.status_code, code)

    @staticmethod
    def _filters(key: Mapping[str, Any]) -> dict[str, str]:
        if not key:
            raise ValueError("A key is required for filtered requests")
        return {column: f"eq.{value}" for column, value in key.items()}

    @staticmethod
    def _rows(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the backend is reachable.

        Returns:
            True if the REST root answers without a server error.
        """
        try:
            response = self._client.get("/")
            return response.status_code < 500
        except httpx.RequestError:
            return False

    # === Record operations ===

    def insert(self, target: str, payload: Mapping[str, Any]) -> Any:
        """Insert a row."""
        response = self._request(
            "POST", f"/{target}", json=dict(payload), prefer="return=representation"
        )
        return self._rows(response)

    def upsert(self, target: str, payload: Mapping[str, Any]) -> Any:
        """Insert or merge a row on its primary key."""
        response = self._request(
            "POST",
            f"/{target}",
            json=dict(payload),
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._rows(response)

    def update(
        self, target: str, key: Mapping[str, Any], payload: Mapping[str, Any]
    ) -> Any:
        """Update rows matching key."""
        response = self._request(
            "PATCH",
            f"/{target}",
            params=self._filters(key),
            json=dict(payload),
            prefer="return=representation",
        )
        return self._rows(response)

    def delete(self, target: str, key: Mapping[str, Any]) -> Any:
        """Delete rows matching key."""
        response = self._request(
            "DELETE",
            f"/{target}",
            params=self._filters(key),
            prefer="return=representation",
        )
        return self._rows(response)

    def fetch(self, target: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        """Get the single row matching key.

        Returns:
            The row, or None if it does not exist.
        """
        params = {"select": "*", **self._filters(key)}
        response = self._request("GET", f"/{target}", params=params)
        rows = self._rows(response)
        if not rows:
            return None
        if isinstance(rows, list):
            return dict(rows[0])
        return dict(rows)
