"""Tests for the MCP server lifecycle and dispatch."""

import io
import json
import logging

import pytest
from helpers import (
    RecordingCapability,
    ScriptedTransport,
    init_request,
    message,
    notification,
    request,
)

from mcp_server_kit.config import ServerConfig
from mcp_server_kit.protocol.errors import (
    AUTHORIZATION_FAILED,
    AUTHORIZATION_REQUIRED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
)
from mcp_server_kit.protocol.http import HttpRequest, HttpTransport
from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage
from mcp_server_kit.protocol.lifecycle import MCP_PROTOCOL_VERSION, LifecycleState
from mcp_server_kit.protocol.transport import Signal, StdioTransport
from mcp_server_kit.server import RESPONSE_TOO_LARGE_MESSAGE, MCPServer


def process(server: MCPServer, data: dict) -> JsonRpcMessage | None:
    return server.process_message(message(data))


class TestInitialize:
    """Tests for the initialize handshake."""

    def test_returns_server_description(self, server: MCPServer):
        """Should report protocol version, server info and instructions."""
        response = process(server, init_request(protocol_version="2024-11-05"))

        assert response.id == 1
        result = response.result
        assert result["protocolVersion"] == MCP_PROTOCOL_VERSION
        assert result["serverInfo"] == {"name": "test-server", "version": "9.9.9"}
        assert result["instructions"] == "Be nice."
        assert server.state == LifecycleState.INITIALIZED

    def test_merges_capabilities_in_order(self):
        """Should let later capabilities overwrite earlier keys."""
        server = MCPServer()
        server.add_capability(
            RecordingCapability("a", capabilities={"tools": {"listChanged": False}, "a": {}})
        )
        server.add_capability(
            RecordingCapability("b", capabilities={"tools": {"listChanged": True}})
        )

        capabilities = process(server, init_request()).result["capabilities"]

        assert capabilities == {
            "tools": {"listChanged": True},
            "a": {},
            "logging": {},
            "completions": {},
        }

    def test_logging_and_completions_are_always_empty(self):
        """Should force logging and completions to empty objects."""
        server = MCPServer()
        server.add_capability(RecordingCapability("a", capabilities={"logging": {"x": 1}}))

        capabilities = process(server, init_request()).result["capabilities"]

        assert capabilities["logging"] == {}
        assert capabilities["completions"] == {}

    @pytest.mark.parametrize("version", [None, "", 20250326])
    def test_requires_protocol_version(self, server: MCPServer, version):
        """Should reject a missing or empty protocol version."""
        response = process(server, init_request(protocol_version=version))

        assert response.error["code"] == INVALID_PARAMS
        assert server.state == LifecycleState.UNINITIALIZED

    def test_initializes_capabilities_in_order(self):
        """Should call initialize on every capability in registration order."""
        calls = []
        server = MCPServer()
        for prefix in ("a", "b", "c"):
            server.add_capability(RecordingCapability(prefix, calls=calls))

        process(server, init_request())

        assert calls == ["a:initialize", "b:initialize", "c:initialize"]

    def test_capability_initialize_failure_aborts(self):
        """Should stop at the first failing capability and stay uninitialized."""
        calls = []
        server = MCPServer()
        server.add_capability(RecordingCapability("a", calls=calls))
        server.add_capability(RecordingCapability("b", calls=calls, fail_initialize=True))
        server.add_capability(RecordingCapability("c", calls=calls))

        response = process(server, init_request())

        assert response.error["code"] == INTERNAL_ERROR
        assert response.error["message"] == "b failed to start"
        assert calls == ["a:initialize", "b:initialize"]
        assert server.state == LifecycleState.UNINITIALIZED

    def test_rejects_second_initialize(self, initialized_server: MCPServer):
        """Should refuse to initialize twice."""
        response = process(initialized_server, init_request(msg_id=2))

        assert response.error["code"] == INVALID_REQUEST
        assert response.error["message"] == "Server already initialized"

    def test_records_client_info(self, initialized_server: MCPServer):
        assert initialized_server.session.client_info == {"name": "test-client", "version": "1.0"}


class TestAuthorization:
    """Tests for the shared-secret check during initialize."""

    @pytest.fixture
    def secured_server(self, server: MCPServer) -> MCPServer:
        server.require_authorization("secret")
        return server

    def test_missing_token(self, secured_server: MCPServer):
        """Should require the token to be set."""
        response = process(secured_server, init_request())

        assert response.error["code"] == AUTHORIZATION_REQUIRED
        assert response.error["message"].startswith("Authorization required")
        assert secured_server.state == LifecycleState.UNINITIALIZED

    def test_empty_token(self, secured_server: MCPServer, monkeypatch):
        """Should treat an empty token as missing."""
        monkeypatch.setenv("MCP_AUTHORIZATION_TOKEN", "")

        response = process(secured_server, init_request())

        assert response.error["code"] == AUTHORIZATION_REQUIRED

    def test_wrong_token(self, secured_server: MCPServer, monkeypatch):
        """Should reject a mismatched token."""
        monkeypatch.setenv("MCP_AUTHORIZATION_TOKEN", "wrong")

        response = process(secured_server, init_request())

        assert response.error["code"] == AUTHORIZATION_FAILED
        assert response.error["message"] == "Authorization failed: Invalid token."

    def test_correct_token(self, secured_server: MCPServer, monkeypatch):
        """Should initialize with the right token."""
        monkeypatch.setenv("MCP_AUTHORIZATION_TOKEN", "secret")

        response = process(secured_server, init_request())

        assert not response.is_error()
        assert secured_server.state == LifecycleState.INITIALIZED

    def test_checked_before_protocol_version(self, secured_server: MCPServer):
        """Should report authorization problems first."""
        response = process(secured_server, init_request(protocol_version=None))

        assert response.error["code"] == AUTHORIZATION_REQUIRED

    def test_missing_expected_token_is_internal_error(self, server: MCPServer, monkeypatch):
        """Should report a misconfigured server."""
        server.require_authorization(None)
        monkeypatch.setenv("MCP_AUTHORIZATION_TOKEN", "secret")

        response = process(server, init_request())

        assert response.error["code"] == INTERNAL_ERROR
        assert response.error["message"] == "Server authorization configuration error."

    def test_not_required_by_default(self, server: MCPServer, monkeypatch):
        """Should ignore the environment when no token is configured."""
        monkeypatch.setenv("MCP_AUTHORIZATION_TOKEN", "anything")

        assert not process(server, init_request()).is_error()

    def test_from_config_enables_authorization(self):
        server = MCPServer.from_config(ServerConfig(name="cfg", auth_token="secret"))

        response = process(server, init_request())

        assert server.name == "cfg"
        assert response.error["code"] == AUTHORIZATION_REQUIRED


class TestPreInitialization:
    """Tests for messages sent before initialize succeeds."""

    @pytest.mark.parametrize("method", ["tools/list", "echo/echo", "ping", "unknown"])
    def test_rejects_requests(self, server: MCPServer, capability, method):
        """Should answer every other request with 'Server not initialized'."""
        response = process(server, request(method))

        assert response.error == {"code": INVALID_REQUEST, "message": "Server not initialized"}
        assert capability.handled == []

    def test_drops_notifications(self, server: MCPServer, capability):
        """Should never answer notifications."""
        assert process(server, notification("echo/echo")) is None
        assert capability.handled == []

    def test_allows_set_level(self, server: MCPServer):
        """Should accept logging/setLevel before initialize."""
        response = process(server, request("logging/setLevel", {"level": "info"}))

        assert response.result == {}
        assert server.client_log_level == "info"


class TestDispatch:
    """Tests for routing to capabilities."""

    def test_routes_to_capability(self, initialized_server: MCPServer):
        """Should return the capability's response."""
        response = process(initialized_server, request("echo/echo", {"x": 1}, msg_id="abc"))

        assert response.id == "abc"
        assert response.result == {"handler": "echo", "params": {"x": 1}}

    def test_first_registered_capability_wins(self):
        """Should select the earliest capability that claims a method."""
        first = RecordingCapability("echo", capabilities={"first": {}})
        second = RecordingCapability("echo", capabilities={"second": {}})
        server = MCPServer()
        server.add_capability(first)
        server.add_capability(second)
        process(server, init_request())

        process(server, request("echo/echo", msg_id=2))

        assert len(first.handled) == 1
        assert second.handled == []
        assert server.get_capability("echo") is first

    def test_unknown_method(self, initialized_server: MCPServer):
        """Should answer unclaimed requests with METHOD_NOT_FOUND."""
        response = process(initialized_server, request("unknown/method", msg_id=5))

        assert response.error["code"] == METHOD_NOT_FOUND
        assert response.error["message"] == "Method not found: unknown/method"

    def test_unknown_notification_is_dropped(self, initialized_server: MCPServer):
        assert process(initialized_server, notification("notifications/initialized")) is None

    def test_ping(self, initialized_server: MCPServer):
        assert process(initialized_server, request("ping", msg_id=3)).result == {}

    def test_capability_failure_is_internal_error(self, initialized_server: MCPServer):
        """Should map unexpected exceptions to INTERNAL_ERROR."""
        response = process(initialized_server, request("echo/fail", msg_id=6))

        assert response.id == 6
        assert response.error["code"] == INTERNAL_ERROR
        assert response.error["message"] == "capability exploded"

    def test_exception_code_attribute_is_used(self, initialized_server: MCPServer):
        """Should use a non-zero integer code carried by the exception."""
        response = process(initialized_server, request("echo/coded"))

        assert response.error["code"] == -32050

    def test_method_not_supported_maps_to_method_not_found(self, initialized_server):
        response = process(initialized_server, request("echo/other"))

        assert response.error["code"] == METHOD_NOT_FOUND
        assert response.error["message"] == "Method not supported: echo/other"

    def test_failing_notification_is_dropped(self, initialized_server: MCPServer):
        """Should never answer a notification, even when it fails."""
        assert process(initialized_server, notification("echo/fail")) is None

    def test_response_messages_are_ignored(self, initialized_server: MCPServer):
        """Should not answer response-shaped messages."""
        incoming = JsonRpcMessage.success({"ok": True}, 12)

        assert initialized_server.process_message(incoming) is None

    def test_batch_semantics(self, initialized_server: MCPServer):
        """Should answer request-shaped members only, in input order."""
        responses = initialized_server.process_batch(
            [
                message(request("echo/echo", msg_id=1)),
                message(notification("echo/echo")),
                message(request("unknown/method", msg_id=2)),
            ]
        )

        assert [r.id for r in responses] == [1, 2]
        assert not responses[0].is_error()
        assert responses[1].error["code"] == METHOD_NOT_FOUND


class TestSetLevel:
    """Tests for logging/setLevel."""

    def test_stores_level_lowercased(self, initialized_server: MCPServer):
        response = process(initialized_server, request("logging/setLevel", {"level": "WARNING"}))

        assert response.result == {}
        assert initialized_server.client_log_level == "warning"

    @pytest.mark.parametrize("params", [{"level": "verbose"}, {}, {"level": 7}])
    def test_rejects_invalid_levels(self, initialized_server: MCPServer, params):
        """Should list the valid levels in the error."""
        response = process(initialized_server, request("logging/setLevel", params))

        assert response.error["code"] == INVALID_PARAMS
        assert "emergency" in response.error["message"]
        assert initialized_server.client_log_level is None


class TestShutdown:
    """Tests for the shutdown request and shutdown()."""

    def test_shutdown_request(self):
        """Should shut capabilities down in order and answer with {}."""
        calls = []
        server = MCPServer()
        server.add_capability(RecordingCapability("a", calls=calls))
        server.add_capability(RecordingCapability("b", calls=calls))
        process(server, init_request())

        response = process(server, request("shutdown", msg_id=9))

        assert response.result == {}
        assert server.state == LifecycleState.SHUTTING_DOWN
        assert calls[-2:] == ["a:shutdown", "b:shutdown"]

    def test_allowed_before_initialize(self, server: MCPServer):
        assert process(server, request("shutdown")).result == {}

    def test_is_idempotent(self):
        """Should never shut a capability down twice."""
        calls = []
        server = MCPServer()
        server.add_capability(RecordingCapability("a", calls=calls))
        process(server, init_request())

        process(server, request("shutdown", msg_id=2))
        second = process(server, request("shutdown", msg_id=3))
        server.shutdown()
        server.shutdown()

        assert second.result == {}
        assert calls.count("a:shutdown") == 1
        assert server.state == LifecycleState.SHUTDOWN

    def test_rejects_requests_after_shutdown(self, initialized_server: MCPServer):
        """Should refuse work once shutdown was requested."""
        process(initialized_server, request("shutdown", msg_id=2))

        response = process(initialized_server, request("echo/echo", msg_id=3))

        assert response.error == {"code": INVALID_REQUEST, "message": "Server is shutting down"}

    def test_shutdown_request_fails_fast(self):
        """Should stop at the first failing capability and report it."""
        calls = []
        server = MCPServer()
        server.add_capability(RecordingCapability("a", calls=calls, fail_shutdown=True))
        server.add_capability(RecordingCapability("b", calls=calls))
        process(server, init_request())

        response = process(server, request("shutdown", msg_id=2))

        assert response.error["code"] == INTERNAL_ERROR
        assert response.error["message"] == "a failed to stop"
        assert "b:shutdown" not in calls
        assert server.state == LifecycleState.SHUTTING_DOWN

    def test_shutdown_method_continues_after_errors(self):
        """Should give every capability its shutdown call."""
        calls = []
        server = MCPServer()
        server.add_capability(RecordingCapability("a", calls=calls, fail_shutdown=True))
        server.add_capability(RecordingCapability("b", calls=calls))
        process(server, init_request())

        server.shutdown()

        assert calls[-2:] == ["a:shutdown", "b:shutdown"]
        assert server.state == LifecycleState.SHUTDOWN

    def test_shutdown_without_initialize_skips_capabilities(self, server, capability):
        server.shutdown()

        assert capability.calls == []
        assert server.state == LifecycleState.SHUTDOWN

    def test_context_manager(self, capability):
        """Should shut down on exit."""
        with MCPServer() as server:
            server.add_capability(capability)
            process(server, init_request())

        assert capability.calls == ["echo:initialize", "echo:shutdown"]
        assert server.state == LifecycleState.SHUTDOWN


class TestLogMessage:
    """Tests for local logging and log forwarding."""

    def test_logs_locally(self, server: MCPServer, caplog):
        """Should map MCP levels onto the logging module."""
        with caplog.at_level(logging.DEBUG, logger="mcp_server_kit.server"):
            server.log_message("warning", "disk almost full", "Disk", {"free": 1})

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "Disk: disk almost full" in record.getMessage()
        assert '"free": 1' in record.getMessage()

    def test_not_forwarded_without_level(self, initialized_server: MCPServer):
        """Should forward nothing before the client sets a level."""
        transport = ScriptedTransport([])
        initialized_server.connect(transport)

        initialized_server.log_message("emergency", "everything is on fire")

        assert transport.sent == []

    def test_forwards_at_or_above_threshold(self, initialized_server: MCPServer):
        """Should forward entries that pass the client's threshold."""
        process(initialized_server, request("logging/setLevel", {"level": "warning"}))
        transport = ScriptedTransport([])
        initialized_server.connect(transport)

        initialized_server.log_message("info", "routine")
        initialized_server.log_message("error", "disk full", "Disk", {"free": 0})

        assert transport.sent == [
            {
                "jsonrpc": "2.0",
                "method": "notifications/message",
                "params": {
                    "level": "error",
                    "message": "disk full",
                    "data": {"free": 0},
                    "logger": "Disk",
                },
            }
        ]

    def test_debug_level_forwards_everything(self, initialized_server: MCPServer):
        process(initialized_server, request("logging/setLevel", {"level": "debug"}))
        transport = ScriptedTransport([])
        initialized_server.connect(transport)

        for level in ("debug", "info", "notice", "emergency"):
            initialized_server.log_message(level, f"{level} entry")

        assert [n["params"]["level"] for n in transport.sent] == [
            "debug",
            "info",
            "notice",
            "emergency",
        ]

    def test_send_failure_is_swallowed(self, initialized_server: MCPServer):
        """Should never propagate failures to send a log notification."""
        process(initialized_server, request("logging/setLevel", {"level": "debug"}))
        initialized_server.connect(ScriptedTransport([], fail_sends=True))

        initialized_server.log_message("error", "still fine")

    def test_http_transport_is_not_used_for_logs(self, initialized_server: MCPServer):
        """Should not push log notifications into an HTTP response."""
        process(initialized_server, request("logging/setLevel", {"level": "debug"}))
        transport = HttpTransport(HttpRequest("POST", {"Content-Type": "application/json"}))
        initialized_server.connect(transport)

        initialized_server.log_message("error", "not for the response")

        assert transport.get_response().status_code == 202


class TestRunLoop:
    """Tests for the stream transport main loop."""

    def test_requires_transport(self, server: MCPServer):
        with pytest.raises(RuntimeError):
            server.run()

    def test_stdio_initialize_and_shutdown(self, server: MCPServer):
        """Should answer initialize and shutdown with one line each."""
        stdin = io.StringIO(
            '{"jsonrpc":"2.0","method":"initialize",'
            '"params":{"protocolVersion":"2025-03-26"},"id":"1"}\n'
            '{"jsonrpc":"2.0","method":"shutdown","id":"2"}\n'
        )
        stdout = io.StringIO()
        server.connect(StdioTransport(stdin=stdin, stdout=stdout, stderr=io.StringIO()))

        server.run()

        lines = stdout.getvalue().splitlines()
        assert len(lines) == 2
        first, second = (json.loads(line) for line in lines)
        assert first["id"] == "1"
        assert first["result"]["capabilities"]["logging"] == {}
        assert first["result"]["capabilities"]["completions"] == {}
        assert second == {"jsonrpc": "2.0", "id": "2", "result": {}}
        assert server.state == LifecycleState.SHUTDOWN

    def test_stops_after_shutdown_request(self, server: MCPServer):
        """Should not read further input once shutdown was requested."""
        transport = ScriptedTransport(
            [init_request(), request("shutdown", msg_id=2), request("ping", msg_id=3)]
        )
        server.connect(transport)

        server.run()

        assert [item["id"] for item in transport.sent] == [1, 2]
        assert transport.remaining == 1

    def test_closed_transport_ends_loop_and_shuts_down(self, server, capability):
        """Should finalize shutdown when input ends."""
        transport = ScriptedTransport([init_request()])
        server.connect(transport)

        server.run()

        assert capability.calls == ["echo:initialize", "echo:shutdown"]
        assert server.state == LifecycleState.SHUTDOWN

    def test_nothing_keeps_polling(self, server: MCPServer):
        """Should poll again after NOTHING."""
        transport = ScriptedTransport([Signal.NOTHING, Signal.NOTHING, init_request()])
        server.connect(transport)

        server.run()

        assert len(transport.sent) == 1
        assert server.session.was_initialized

    def test_batch_is_answered_with_array(self, server: MCPServer):
        """Should answer a batch with one array of the request responses."""
        transport = ScriptedTransport(
            [
                init_request(),
                [
                    request("echo/echo", msg_id=1),
                    notification("echo/echo"),
                    request("unknown/method", msg_id=2),
                ],
            ]
        )
        server.connect(transport)

        server.run()

        batch = transport.sent[1]
        assert isinstance(batch, list)
        assert [item["id"] for item in batch] == [1, 2]
        assert batch[1]["error"]["code"] == METHOD_NOT_FOUND

    def test_single_element_batch_is_still_an_array(self, initialized_server: MCPServer):
        transport = ScriptedTransport([[request("ping", msg_id=4)]])
        initialized_server.connect(transport)

        initialized_server.run()

        assert transport.sent == [[{"jsonrpc": "2.0", "id": 4, "result": {}}]]

    def test_notification_only_batch_sends_nothing(self, initialized_server: MCPServer):
        transport = ScriptedTransport([[notification("echo/echo"), notification("other")]])
        initialized_server.connect(transport)

        initialized_server.run()

        assert transport.sent == []

    def test_empty_batch_is_answered_and_loop_continues(self, initialized_server):
        """Should answer [] with one INVALID_REQUEST error and keep reading."""
        transport = ScriptedTransport([[], request("ping", msg_id=7)])
        initialized_server.connect(transport)

        initialized_server.run()

        assert len(transport.sent) == 2
        error = transport.sent[0]
        assert error["id"] is None
        assert error["error"]["code"] == INVALID_REQUEST
        assert transport.sent[1] == {"jsonrpc": "2.0", "id": 7, "result": {}}

    def test_parse_error_without_id_is_logged_only(
        self, initialized_server: MCPServer, caplog
    ):
        """Should continue after undecodable input without an addressable id."""
        transport = ScriptedTransport(["{not json", request("ping", msg_id=2)])
        initialized_server.connect(transport)

        with caplog.at_level(logging.DEBUG, logger="mcp_server_kit.server"):
            initialized_server.run()

        assert transport.sent == [{"jsonrpc": "2.0", "id": 2, "result": {}}]
        record = next(r for r in caplog.records if "without a usable id" in r.getMessage())
        assert record.levelno == logging.CRITICAL

    def test_invalid_request_with_id_is_answered(self, initialized_server: MCPServer):
        """Should answer a malformed request whose id can be recovered."""
        transport = ScriptedTransport(['{"jsonrpc": "1.0", "id": 3, "method": "ping"}'])
        initialized_server.connect(transport)

        initialized_server.run()

        assert transport.sent[0]["id"] == 3
        assert transport.sent[0]["error"]["code"] == INVALID_REQUEST

    def test_fatal_transport_error_forces_shutdown(self, server: MCPServer, capability):
        """Should stop the loop when the transport can no longer send."""
        transport = ScriptedTransport([init_request(), request("ping", msg_id=2)], fail_sends=True)
        server.connect(transport)

        server.run()

        assert transport.remaining == 1
        assert server.state == LifecycleState.SHUTDOWN
        assert capability.calls == ["echo:initialize", "echo:shutdown"]

    def test_oversized_input_forces_shutdown(self, server: MCPServer):
        """Should treat an oversized line as fatal."""
        stdin = io.StringIO(json.dumps(init_request()) + "\n")
        stdout = io.StringIO()
        transport = StdioTransport(
            stdin=stdin, stdout=stdout, stderr=io.StringIO(), max_message_size=10
        )
        server.connect(transport)

        server.run()

        assert stdout.getvalue() == ""
        assert server.state == LifecycleState.SHUTDOWN

    def test_oversized_response_is_answered_then_fatal(self):
        """Should answer a request whose response is too large, then stop."""
        server = MCPServer(name="test-server", version="9.9.9", instructions="x" * 500)
        stdin = io.StringIO(
            json.dumps(init_request()) + "\n" + json.dumps(request("ping", msg_id=2)) + "\n"
        )
        stdout = io.StringIO()
        server.connect(
            StdioTransport(stdin=stdin, stdout=stdout, stderr=io.StringIO(), max_message_size=300)
        )

        server.run()

        lines = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert lines == [
            {
                "jsonrpc": "2.0",
                "id": 1,
                "error": {"code": INTERNAL_ERROR, "message": RESPONSE_TOO_LARGE_MESSAGE},
            }
        ]
        assert server.state == LifecycleState.SHUTDOWN

    def test_oversized_batch_response_answers_every_id(self):
        server = MCPServer(name="test-server", version="9.9.9", instructions="x" * 500)
        transport = ScriptedTransport(
            [[init_request(), request("ping", msg_id=2)]], max_message_size=300
        )
        server.connect(transport)

        server.run()

        assert [(item["id"], item["error"]["code"]) for item in transport.sent[0]] == [
            (1, INTERNAL_ERROR),
            (2, INTERNAL_ERROR),
        ]
        assert server.state == LifecycleState.SHUTDOWN

    def test_invalid_utf8_line_is_skipped(self, server: MCPServer):
        """Should log a line that is not UTF-8 and keep serving."""
        raw = b'\xff\xfe{"bad"}\n' + json.dumps(init_request()).encode() + b"\n"
        stdin = io.TextIOWrapper(io.BytesIO(raw), encoding="utf-8")
        stdout = io.StringIO()
        server.connect(StdioTransport(stdin=stdin, stdout=stdout, stderr=io.StringIO()))

        server.run()

        lines = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert len(lines) == 1
        assert lines[0]["id"] == 1
        assert lines[0]["result"]["serverInfo"]["name"] == "test-server"

    def test_log_notifications_share_the_stream(self, initialized_server: MCPServer):
        """Should forward log entries on stdio once a level is set."""
        stdout = io.StringIO()
        stdin = io.StringIO(json.dumps(request("logging/setLevel", {"level": "info"})) + "\n")
        initialized_server.connect(StdioTransport(stdin=stdin, stdout=stdout, stderr=io.StringIO()))

        initialized_server.run()

        lines = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert lines[0]["method"] == "notifications/message"
        assert lines[0]["params"]["level"] == "info"
        assert lines[1] == {"jsonrpc": "2.0", "id": 1, "result": {}}


class TestHttpCycle:
    """Tests for serving one HTTP exchange."""

    def exchange(self, server: MCPServer, body, method="POST", content_type="application/json"):
        if not isinstance(body, bytes):
            body = json.dumps(body).encode()
        transport = HttpTransport(HttpRequest(method, {"Content-Type": content_type}, body))
        server.connect(transport)
        server.run()
        return transport.get_response()

    def test_single_request(self, server: MCPServer):
        response = self.exchange(server, init_request())

        assert response.status_code == 200
        assert response.json()["result"]["protocolVersion"] == MCP_PROTOCOL_VERSION

    def test_session_spans_exchanges(self, server: MCPServer):
        """Should keep session state between exchanges."""
        self.exchange(server, init_request())

        response = self.exchange(server, request("echo/echo", {"a": 1}, msg_id=2))

        assert response.json()["result"]["params"] == {"a": 1}

    def test_batch_body(self, initialized_server: MCPServer):
        response = self.exchange(
            initialized_server, [request("ping", msg_id=1), request("nope", msg_id=2)]
        )

        body = response.json()
        assert [item["id"] for item in body] == [1, 2]

    def test_notification_only_is_accepted(self, initialized_server: MCPServer):
        response = self.exchange(initialized_server, notification("notifications/initialized"))

        assert response.status_code == 202
        assert response.body == b""

    def test_rejected_method(self, server: MCPServer):
        """Should answer a GET with 405 and an INVALID_REQUEST body."""
        response = self.exchange(server, b"", method="GET")

        assert response.status_code == 405
        assert response.json()["error"]["code"] == INVALID_REQUEST
        assert "GET" in response.json()["error"]["message"]

    def test_rejected_content_type(self, server: MCPServer):
        response = self.exchange(server, b"{}", content_type="text/plain")

        assert response.status_code == 415

    def test_empty_body(self, server: MCPServer):
        response = self.exchange(server, b"")

        assert response.status_code == 200
        assert response.json()["error"]["code"] == INVALID_REQUEST

    def test_empty_batch(self, initialized_server: MCPServer):
        response = self.exchange(initialized_server, [])

        assert response.json()["error"]["code"] == INVALID_REQUEST

    def test_parse_error(self, server: MCPServer):
        response = self.exchange(server, b"{broken")

        body = response.json()
        assert body["id"] is None
        assert body["error"]["code"] == PARSE_ERROR

    def test_shutdown_over_http(self, initialized_server: MCPServer, capability):
        """Should finish shutdown after answering the shutdown request."""
        response = self.exchange(initialized_server, request("shutdown", msg_id=5))

        assert response.json()["result"] == {}
        assert initialized_server.state == LifecycleState.SHUTDOWN
        assert capability.calls.count("echo:shutdown") == 1
