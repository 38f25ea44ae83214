"""Tests for the HTTP sync transport and the wire models."""

import json

import httpx
import pytest

from tuido.core.credentials import StaticCredentialProvider
from tuido.core.errors import AuthError, CredentialsError, ProtocolError, TransientError
from tuido.core.transport import HttpSyncTransport, RemoteTask, SyncResult, WireCommand
from tuido.core.transport.base import SyncTransport
from tuido.core.transport.memory import InMemoryTransport

BASE_URL = "https://sync.example.com/v1"

EMPTY_RESULT = {"cursor": "c1", "command_results": [], "changes": {}}


def make_transport(handler, token: str = "secret") -> HttpSyncTransport:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpSyncTransport(BASE_URL, StaticCredentialProvider(token), client=client)


class MissingCredentials:
    def get_token(self) -> str:
        raise CredentialsError("no token")


class TestRequests:
    """Test suite for what the transport sends."""

    def test_pull_posts_cursor_with_bearer_token(self) -> None:
        """Test the URL, auth header and body of a pull."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=EMPTY_RESULT)

        result = make_transport(handler).pull("c0")

        (request,) = seen
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/sync"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"cursor": "c0", "commands": []}
        assert result.cursor == "c1"

    def test_push_sends_commands(self) -> None:
        """Test that commands go out with type, payload and temp id."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "cursor": "c2",
                    "command_results": [
                        {"temp_id": "tmp-1", "status": "accepted", "remote_id": "99"}
                    ],
                },
            )

        command = WireCommand(type="item_add", payload={"content": "Buy milk"}, temp_id="tmp-1")
        result = make_transport(handler).push("c1", [command])

        assert bodies[0]["commands"] == [
            {"type": "item_add", "payload": {"content": "Buy milk"}, "temp_id": "tmp-1"}
        ]
        assert result.command_results[0].remote_id == "99"
        assert result.command_results[0].accepted

    def test_trailing_slash_stripped(self) -> None:
        """Test that the sync URL does not double the slash."""
        transport = HttpSyncTransport(f"{BASE_URL}/", StaticCredentialProvider("t"))

        assert transport.sync_url == f"{BASE_URL}/sync"
        transport.close()

    def test_satisfies_protocol(self) -> None:
        """Test that both transports implement SyncTransport."""
        assert isinstance(make_transport(lambda r: httpx.Response(200)), SyncTransport)
        assert isinstance(InMemoryTransport(), SyncTransport)


class TestErrorClassification:
    """Test suite for mapping failures onto the error taxonomy."""

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, status) -> None:
        """Test that a refused credential is an AuthError."""
        transport = make_transport(lambda r: httpx.Response(status, text="bad token"))

        with pytest.raises(AuthError) as exc_info:
            transport.pull("c0")

        assert exc_info.value.context["status_code"] == status
        assert exc_info.value.retryable is False

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503])
    def test_transient_statuses(self, status) -> None:
        """Test that server-side and throttling failures are transient."""
        transport = make_transport(lambda r: httpx.Response(status))

        with pytest.raises(TransientError) as exc_info:
            transport.pull("c0")

        assert exc_info.value.retryable is True

    @pytest.mark.parametrize("status", [400, 404, 422])
    def test_client_errors_are_protocol_errors(self, status) -> None:
        """Test that other 4xx responses are not retried."""
        transport = make_transport(lambda r: httpx.Response(status, text="nope"))

        with pytest.raises(ProtocolError) as exc_info:
            transport.pull("c0")

        assert exc_info.value.context["body"] == "nope"

    def test_timeout_is_transient(self) -> None:
        """Test that a timed out request is transient."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransientError, match="timed out"):
            make_transport(handler).pull("c0")

    def test_connection_error_is_transient(self) -> None:
        """Test that a network failure is transient."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientError, match="connection refused"):
            make_transport(handler).pull("c0")

    def test_invalid_json_is_protocol_error(self) -> None:
        """Test that a non-JSON body is a protocol violation."""
        transport = make_transport(lambda r: httpx.Response(200, text="<html>"))

        with pytest.raises(ProtocolError, match="not valid JSON"):
            transport.pull("c0")

    def test_schema_violation_is_protocol_error(self) -> None:
        """Test that a response without a cursor is a protocol violation."""
        transport = make_transport(lambda r: httpx.Response(200, json={"changes": {}}))

        with pytest.raises(ProtocolError, match="violates the protocol"):
            transport.pull("c0")

    def test_result_for_unsent_command(self) -> None:
        """Test that a result for a command that was not sent is refused."""
        body = {
            "cursor": "c1",
            "command_results": [{"temp_id": "other", "status": "accepted", "remote_id": "1"}],
        }
        transport = make_transport(lambda r: httpx.Response(200, json=body))
        command = WireCommand(type="item_add", payload={}, temp_id="mine")

        with pytest.raises(ProtocolError) as exc_info:
            transport.push("c0", [command])

        assert exc_info.value.context["temp_ids"] == ["other"]

    def test_missing_credentials_is_auth_error(self) -> None:
        """Test that no configured token halts sync like a refused one."""
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        transport = HttpSyncTransport(BASE_URL, MissingCredentials(), client=client)

        with pytest.raises(AuthError, match="no token"):
            transport.pull("c0")


class TestWireModels:
    """Test suite for parsing remote records."""

    def test_numeric_ids_coerced(self) -> None:
        """Test that servers sending integer ids are accepted."""
        task = RemoteTask.model_validate({"id": 42, "content": "x", "project_id": 7})

        assert task.id == "42"
        assert task.project_id == "7"

    def test_numeric_ids_in_push_response(self) -> None:
        """Test that a push answered with integer ids parses end to end."""
        body = {
            "cursor": "c2",
            "command_results": [{"temp_id": "mine", "status": "accepted", "remote_id": 123}],
            "changes": {"tasks": [{"id": 5, "content": "x"}], "deleted_task_ids": [7]},
        }
        transport = make_transport(lambda r: httpx.Response(200, json=body))
        command = WireCommand(type="item_add", payload={}, temp_id="mine")

        result = transport.push("c1", [command])

        assert result.command_results[0].remote_id == "123"
        assert result.changes.deleted_task_ids == ["7"]

    def test_unknown_fields_ignored(self) -> None:
        """Test that newer servers may add fields."""
        result = SyncResult.model_validate(
            {
                "cursor": "c1",
                "sync_status": {},
                "changes": {
                    "tasks": [{"id": "1", "content": "x", "labels": ["home"]}],
                    "collaborators": [],
                },
            }
        )

        assert result.changes.tasks[0].content == "x"
        assert result.full_sync is False

    def test_priority_out_of_range(self) -> None:
        """Test that priorities outside 1-4 are refused."""
        with pytest.raises(ValueError):
            RemoteTask.model_validate({"id": "1", "content": "x", "priority": 9})
