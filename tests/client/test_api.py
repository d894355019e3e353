"""Tests for the REST record client."""

from __future__ import annotations

import json

import httpx
import pytest

from offlinesync.client.api import (
    APIError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RestRecordClient,
    TransportFailure,
    describe_error,
)
from offlinesync.core.config import ServerConfig
from offlinesync.core.errors import ConflictDetected, OperationFailure


def make_config(token: str | None = None) -> ServerConfig:
    """Create a ServerConfig for testing."""
    return ServerConfig(server_url="http://test", api_key="anon-key", token=token)


class TestHeaders:
    """Tests for authentication headers."""

    def test_api_key_headers(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Requests carry the api key and a bearer token."""
        httpx_mock.add_response(json=[{"id": "t1"}])

        with RestRecordClient(make_config()) as client:
            client.insert("tasks", {"id": "t1"})

        request = httpx_mock.get_request()
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"

    def test_user_token(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A user token replaces the api key as bearer."""
        httpx_mock.add_response(json=[])

        with RestRecordClient(make_config(token="jwt")) as client:
            client.upsert("notes", {"id": "n1"})

        assert httpx_mock.get_request().headers["Authorization"] == "Bearer jwt"


class TestRecordOperations:
    """Tests for request shapes."""

    def test_insert(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Insert POSTs the row and returns the representation."""
        httpx_mock.add_response(
            url="http://test/rest/v1/tasks",
            method="POST",
            status_code=201,
            json=[{"id": "t1", "title": "Buy milk"}],
        )

        with RestRecordClient(make_config()) as client:
            rows = client.insert("tasks", {"id": "t1", "title": "Buy milk"})

        assert rows == [{"id": "t1", "title": "Buy milk"}]
        request = httpx_mock.get_request()
        assert request.headers["Prefer"] == "return=representation"
        assert json.loads(request.content) == {"id": "t1", "title": "Buy milk"}

    def test_upsert_merges_duplicates(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Upsert asks the server to merge on the primary key."""
        httpx_mock.add_response(method="POST", json=[{"user_id": "u1"}])

        with RestRecordClient(make_config()) as client:
            client.upsert("user_stats", {"user_id": "u1", "streak": 2})

        prefer = httpx_mock.get_request().headers["Prefer"]
        assert "resolution=merge-duplicates" in prefer

    def test_update_filters_on_key(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Update PATCHes rows matching the key."""
        httpx_mock.add_response(method="PATCH", json=[{"id": "n1", "body": "new"}])

        with RestRecordClient(make_config()) as client:
            client.update("notes", {"id": "n1"}, {"body": "new"})

        request = httpx_mock.get_request()
        assert request.method == "PATCH"
        assert request.url.path == "/rest/v1/notes"
        assert request.url.params["id"] == "eq.n1"

    def test_delete_filters_on_key(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Delete sends a DELETE with the key filter."""
        httpx_mock.add_response(method="DELETE", status_code=204)

        with RestRecordClient(make_config()) as client:
            assert client.delete("tasks", {"id": "t1"}) is None

        request = httpx_mock.get_request()
        assert request.method == "DELETE"
        assert request.url.params["id"] == "eq.t1"

    def test_fetch_returns_first_row(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Fetch selects the matching row."""
        httpx_mock.add_response(method="GET", json=[{"id": "n1", "title": "Server"}])

        with RestRecordClient(make_config()) as client:
            row = client.fetch("notes", {"id": "n1"})

        assert row == {"id": "n1", "title": "Server"}
        params = httpx_mock.get_request().url.params
        assert params["select"] == "*"
        assert params["id"] == "eq.n1"

    def test_fetch_missing(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """No row gives None."""
        httpx_mock.add_response(method="GET", json=[])

        with RestRecordClient(make_config()) as client:
            assert client.fetch("notes", {"id": "n1"}) is None

    def test_update_requires_key(self) -> None:
        """Filtered requests need a key."""
        with RestRecordClient(make_config()) as client, pytest.raises(ValueError):
            client.update("notes", {}, {"body": "x"})


class TestErrors:
    """Tests for error mapping."""

    def test_unique_violation_is_conflict(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Code 23505 raises ConflictError."""
        httpx_mock.add_response(
            status_code=409,
            json={"code": "23505", "message": "duplicate key value"},
        )

        with RestRecordClient(make_config()) as client:
            with pytest.raises(ConflictError) as exc_info:
                client.insert("notes", {"id": "n1"})

        error = exc_info.value
        assert isinstance(error, ConflictDetected)
        assert error.code == "23505"
        assert str(error) == "This item already exists"

    def test_unique_violation_with_other_status(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """The code alone identifies a conflict."""
        httpx_mock.add_response(status_code=400, json={"code": "23505"})

        with RestRecordClient(make_config()) as client, pytest.raises(ConflictError):
            client.insert("notes", {"id": "n1"})

    def test_authentication_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(status_code=401, json={"message": "JWT expired"})

        with RestRecordClient(make_config()) as client, pytest.raises(AuthenticationError):
            client.upsert("notes", {"id": "n1"})

    def test_not_found(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(status_code=404, json={"code": "42P01"})

        with RestRecordClient(make_config()) as client, pytest.raises(NotFoundError):
            client.upsert("missing_table", {"id": "1"})

    def test_other_error_keeps_code(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Other errors are APIError with a friendly message when known."""
        httpx_mock.add_response(status_code=403, json={"code": "42501", "message": "denied"})

        with RestRecordClient(make_config()) as client:
            with pytest.raises(APIError) as exc_info:
                client.insert("tasks", {"id": "t1"})

        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == "Permission denied"

    def test_non_json_error_body(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(status_code=500, text="<html>oops</html>")

        with RestRecordClient(make_config()) as client:
            with pytest.raises(APIError, match="Unknown error"):
                client.insert("tasks", {"id": "t1"})

    def test_transport_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Connection errors raise TransportFailure, an OperationFailure."""
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

        with RestRecordClient(make_config()) as client:
            with pytest.raises(TransportFailure) as exc_info:
                client.insert("tasks", {"id": "t1"})

        assert isinstance(exc_info.value, OperationFailure)

    def test_describe_error(self) -> None:
        assert describe_error("23503", "raw") == "Referenced item does not exist"
        assert describe_error(None, "raw") == "raw"
        assert describe_error("XX000", "raw") == "raw"


class TestHealthCheck:
    """Tests for the reachability probe."""

    def test_reachable(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url="http://test/rest/v1/", json={})

        with RestRecordClient(make_config()) as client:
            assert client.health_check() is True

    def test_server_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(url="http://test/rest/v1/", status_code=503)

        with RestRecordClient(make_config()) as client:
            assert client.health_check() is False

    def test_unreachable(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_exception(httpx.ConnectError("no route to host"))

        with RestRecordClient(make_config()) as client:
            assert client.health_check() is False
