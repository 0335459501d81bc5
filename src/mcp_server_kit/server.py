"""MCP Server - lifecycle and message dispatch.

Owns the ordered capability list and the session lifecycle, runs the
receive/dispatch/send loop over a connected transport and maps failures
to JSON-RPC error responses.
"""

from __future__ import annotations

import hmac
import json
import logging
import os
from typing import Any

from mcp_server_kit.capabilities.base import Capability
from mcp_server_kit.config import DEFAULT_INSTRUCTIONS, ServerConfig
from mcp_server_kit.protocol.errors import (
    AUTHORIZATION_FAILED,
    AUTHORIZATION_REQUIRED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    JsonRpcError,
    MessageTooLargeError,
    TransportError,
)
from mcp_server_kit.protocol.http import HttpTransport
from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage
from mcp_server_kit.protocol.lifecycle import (
    LOG_LEVEL_PRIORITIES,
    MCP_PROTOCOL_VERSION,
    PYTHON_LOG_LEVELS,
    LifecycleState,
    Session,
    is_valid_log_level,
)
from mcp_server_kit.protocol.transport import Signal, Transport

logger = logging.getLogger(__name__)

AUTH_TOKEN_ENV_VAR = "MCP_AUTHORIZATION_TOKEN"

EMPTY_BATCH_MESSAGE = "Invalid Request: empty batch"
RESPONSE_TOO_LARGE_MESSAGE = "Response exceeds maximum message size"


class MCPServer:
    """MCP Server implementation.

    Provides a complete MCP server that handles:
    - Lifecycle management (initialize/shutdown)
    - Client-controlled log forwarding (logging/setLevel)
    - Routing of all other methods to registered capabilities

    Capabilities are consulted in registration order: that order drives
    initialization, shutdown, the merge of the advertised capabilities
    and dispatch priority (first capability to claim a method wins).
    """

    def __init__(
        self,
        name: str = "mcp-server-kit",
        version: str = "1.0.0",
        instructions: str | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            name: Server name reported in serverInfo.
            version: Server version reported in serverInfo.
            instructions: Text returned to the client from initialize.
        """
        self._name = name
        self._version = version
        self._instructions = instructions if instructions is not None else DEFAULT_INSTRUCTIONS
        self._capabilities: list[Capability] = []
        self._capability_index: dict[str, Capability] = {}
        self._session = Session()
        self._transport: Transport | None = None
        self._authorization_required = False
        self._expected_token: str | None = None

    @classmethod
    def from_config(cls, config: ServerConfig) -> MCPServer:
        """Create a server from loaded configuration.

        Args:
            config: Server configuration.

        Returns:
            Configured server with authorization set up if requested.
        """
        server = cls(name=config.name, version=config.version, instructions=config.instructions)
        if config.auth_token is not None:
            server.require_authorization(config.auth_token)
        return server

    @property
    def name(self) -> str:
        """Get the server name."""
        return self._name

    @property
    def version(self) -> str:
        """Get the server version."""
        return self._version

    @property
    def session(self) -> Session:
        """Get the session state."""
        return self._session

    @property
    def state(self) -> LifecycleState:
        """Get the current lifecycle state."""
        return self._session.state

    @property
    def client_log_level(self) -> str | None:
        """Get the log level the client asked for, if any."""
        return self._session.client_log_level

    @property
    def capabilities(self) -> tuple[Capability, ...]:
        """Get the registered capabilities in registration order."""
        return tuple(self._capabilities)

    @property
    def transport(self) -> Transport | None:
        """Get the connected transport."""
        return self._transport

    # -- setup ---------------------------------------------------------------

    def require_authorization(self, expected_token: str) -> None:
        """Require clients to present a shared secret during initialize.

        The client passes the secret out of band through the
        MCP_AUTHORIZATION_TOKEN environment variable.

        Args:
            expected_token: Token the server expects.
        """
        if not expected_token:
            self.log_message(
                "warning",
                "Authorization required but an empty token was configured.",
                "Server.Authorization",
            )
        self._authorization_required = True
        self._expected_token = expected_token

    def add_capability(self, capability: Capability) -> None:
        """Register a capability.

        Args:
            capability: Capability to append to the dispatch order.
        """
        self._capabilities.append(capability)
        self._capability_index.setdefault(capability.name, capability)

    def get_capability(self, name: str) -> Capability | None:
        """Look up the first registered capability with the given name.

        Args:
            name: Capability name.

        Returns:
            The capability, or None if none is registered under that name.
        """
        return self._capability_index.get(name)

    def connect(self, transport: Transport) -> None:
        """Bind the transport used by run() and log forwarding.

        Args:
            transport: Transport to use.
        """
        self._transport = transport

    # -- main loop -----------------------------------------------------------

    def run(self) -> None:
        """Process messages from the connected transport.

        Stream transports are served until shutdown or end of input; an
        HttpTransport is served for exactly one request/response cycle.

        Raises:
            RuntimeError: If no transport is connected.
        """
        if self._transport is None:
            raise RuntimeError("No transport connected")

        if isinstance(self._transport, HttpTransport):
            self._run_http_cycle(self._transport)
            return

        self._run_stream_loop(self._transport)

    def _run_stream_loop(self, transport: Transport) -> None:
        while not self._session.is_shutting_down:
            try:
                received = transport.receive()

                if received is Signal.NOTHING:
                    if transport.is_closed():
                        break
                    continue

                if isinstance(received, Signal):
                    self.log_message("info", "Transport closed, stopping", "Server.run")
                    break

                if not received:
                    # Empty batch: answered like any other invalid request
                    transport.send(
                        JsonRpcMessage.failure(INVALID_REQUEST, EMPTY_BATCH_MESSAGE, None)
                    )
                    continue

                responses = self.process_batch(received)
                if responses:
                    self._send_responses(transport, responses)

            except TransportError as e:
                self._handle_transport_error(transport, e)

            except Exception as e:
                self.log_message(
                    "critical", f"Critical server error in message loop: {e}", "Server.run"
                )
                logger.debug("Loop failure details", exc_info=True)

        self.shutdown()

    def _send_responses(self, transport: Transport, responses: list[JsonRpcMessage]) -> None:
        """Send the responses for one received unit.

        A unit whose responses do not fit within the transport's size
        limit is answered with INTERNAL_ERROR for each affected id before
        the error propagates as fatal.
        """
        batch = transport.last_unit_was_batch
        try:
            transport.send(responses if batch else responses[0])
        except MessageTooLargeError as e:
            self.log_message("error", f"Dropping oversized response: {e.message}", "Server.run")
            failures = [
                JsonRpcMessage.failure(INTERNAL_ERROR, RESPONSE_TOO_LARGE_MESSAGE, response.id)
                for response in responses
            ]
            transport.send(failures if batch else failures[0])
            raise

    def _handle_transport_error(self, transport: Transport, error: TransportError) -> None:
        if error.fatal:
            self.log_message(
                "critical",
                f"Transport error occurred, shutting down: {error.message}",
                "Server.run",
            )
            self._session.begin_shutdown()
            return

        if error.request_id is None:
            self.log_message(
                "critical",
                f"Transport error on message without a usable id: {error.message}",
                "Server.run",
            )
            return

        try:
            transport.send(JsonRpcMessage.failure(error.code, error.message, error.request_id))
        except TransportError as send_error:
            self.log_message(
                "critical",
                f"Transport error occurred, shutting down: {send_error.message}",
                "Server.run",
            )
            self._session.begin_shutdown()

    def _run_http_cycle(self, transport: HttpTransport) -> None:
        payload: JsonRpcMessage | list[JsonRpcMessage] | None = None

        try:
            received = transport.receive()

            if received is Signal.REJECTED:
                self.log_message(
                    "error",
                    f"HTTP request rejected: {transport.rejection_reason}",
                    "Server.run",
                )
                payload = JsonRpcMessage.failure(
                    INVALID_REQUEST, f"Invalid request: {transport.rejection_reason}", None
                )
            elif isinstance(received, Signal):
                payload = JsonRpcMessage.failure(
                    INVALID_REQUEST, "Request body was empty or contained only whitespace.", None
                )
            elif not received:
                payload = JsonRpcMessage.failure(INVALID_REQUEST, EMPTY_BATCH_MESSAGE, None)
            else:
                responses = self.process_batch(received)
                if responses:
                    payload = responses if transport.last_unit_was_batch else responses[0]

        except TransportError as e:
            self.log_message("error", f"Transport error in HTTP cycle: {e.message}", "Server.run")
            payload = JsonRpcMessage.failure(e.code, e.message, e.request_id)

        except Exception as e:
            self.log_message("critical", f"Critical server error in HTTP cycle: {e}", "Server.run")
            payload = JsonRpcMessage.failure(INTERNAL_ERROR, "Internal server error.", None)

        if payload is not None:
            transport.send(payload)

        if self._session.is_shutting_down:
            self.shutdown()

    def shutdown(self) -> None:
        """Shut down the session and its capabilities.

        Idempotent: capabilities are shut down at most once, and only if
        the session was ever initialized. Failures are logged and the
        remaining capabilities still get their shutdown call.
        """
        if self._session.was_initialized and not self._session.capabilities_shut_down:
            self._session.capabilities_shut_down = True
            for capability in self._capabilities:
                try:
                    capability.shutdown()
                except Exception as e:
                    self.log_message(
                        "error",
                        f"Error during shutdown of capability '{capability.name}': {e}",
                        "Server.shutdown",
                    )
        self._session.finish_shutdown()

    # -- dispatch ------------------------------------------------------------

    def process_batch(self, messages: list[JsonRpcMessage]) -> list[JsonRpcMessage]:
        """Process messages strictly in order.

        Args:
            messages: Messages of one received unit.

        Returns:
            Responses for the request-shaped messages, in input order.
        """
        responses = []
        for message in messages:
            response = self.process_message(message)
            if response is not None:
                responses.append(response)
        return responses

    def process_message(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        """Handle one message, converting failures into error responses.

        Args:
            message: Message to process.

        Returns:
            The response, or None for notifications (even failed ones).
        """
        try:
            response = self.handle_message(message)
        except Exception as e:
            self.log_message(
                "error",
                f"Error processing message: {e}",
                "Server.processMessage",
                {"id": message.id, "method": message.method},
            )
            logger.debug("Message failure details", exc_info=True)
            if not message.is_request():
                return None
            return JsonRpcMessage.failure(
                _error_code(e), _error_message(e), message.id, getattr(e, "data", None)
            )

        if response is not None and not message.is_request():
            # Notifications are never answered
            return None
        return response

    def handle_message(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        """Route a message to a built-in handler or a capability.

        Args:
            message: Message to handle.

        Returns:
            The response, or None when no response is due.
        """
        method = message.method
        if method is None:
            self.log_message("debug", f"Ignoring response message with id {message.id}")
            return None

        if method == "shutdown":
            return self._handle_shutdown(message)

        if not self._session.is_initialized:
            if self._session.is_shutting_down:
                return self._reject(message, "Server is shutting down")
            if method == "initialize":
                return self._handle_initialize(message)
            if method == "logging/setLevel":
                return self._handle_set_level(message)
            return self._reject(message, "Server not initialized")

        if method == "logging/setLevel":
            return self._handle_set_level(message)
        if method == "initialize":
            return self._reject(message, "Server already initialized")
        if method == "ping":
            return JsonRpcMessage.success({}, message.id) if message.is_request() else None

        return self._dispatch_to_capability(message)

    def _reject(self, message: JsonRpcMessage, reason: str) -> JsonRpcMessage | None:
        if not message.is_request():
            self.log_message("debug", f"Dropping notification '{message.method}': {reason}")
            return None
        return JsonRpcMessage.failure(INVALID_REQUEST, reason, message.id)

    def _dispatch_to_capability(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        for capability in self._capabilities:
            if capability.can_handle_message(message):
                return capability.handle_message(message)

        if message.is_request():
            return JsonRpcMessage.failure(
                METHOD_NOT_FOUND, f"Method not found: {message.method}", message.id
            )
        return None

    # -- built-in methods ----------------------------------------------------

    def _handle_initialize(self, message: JsonRpcMessage) -> JsonRpcMessage:
        if self._authorization_required:
            auth_error = self._check_authorization(message)
            if auth_error is not None:
                return auth_error

        params = message.params if isinstance(message.params, dict) else {}
        protocol_version = params.get("protocolVersion")
        if not isinstance(protocol_version, str) or not protocol_version:
            return JsonRpcMessage.failure(
                INVALID_PARAMS,
                "Missing protocol version parameter in initialize request.",
                message.id,
            )

        capabilities = self._build_capabilities()

        for capability in self._capabilities:
            try:
                capability.initialize()
            except Exception as e:
                self.log_message(
                    "error",
                    f"Capability '{capability.name}' failed to initialize: {e}",
                    "Server.initialize",
                )
                return JsonRpcMessage.failure(INTERNAL_ERROR, str(e), message.id)

        self._session.mark_initialized(params)
        self.log_message(
            "info", f"Session initialized (client protocol {protocol_version})", "Server.initialize"
        )
        return JsonRpcMessage.success(
            {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": capabilities,
                "serverInfo": {"name": self._name, "version": self._version},
                "instructions": self._instructions,
            },
            message.id,
        )

    def _check_authorization(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        token = os.environ.get(AUTH_TOKEN_ENV_VAR, "")
        if not token:
            self.log_message(
                "error",
                f"Client failed to provide {AUTH_TOKEN_ENV_VAR} during initialization.",
                "Server.Authorization",
            )
            return JsonRpcMessage.failure(
                AUTHORIZATION_REQUIRED,
                f"Authorization required: {AUTH_TOKEN_ENV_VAR} environment variable "
                "not set or empty.",
                message.id,
            )

        if self._expected_token is None:
            self.log_message(
                "critical",
                "Authorization is required but no expected token is configured.",
                "Server.Authorization",
            )
            return JsonRpcMessage.failure(
                INTERNAL_ERROR, "Server authorization configuration error.", message.id
            )

        if not hmac.compare_digest(self._expected_token.encode(), token.encode()):
            self.log_message(
                "error",
                f"Client provided an invalid {AUTH_TOKEN_ENV_VAR} during initialization.",
                "Server.Authorization",
            )
            return JsonRpcMessage.failure(
                AUTHORIZATION_FAILED, "Authorization failed: Invalid token.", message.id
            )

        self.log_message("info", "Client successfully authorized.", "Server.Authorization")
        return None

    def _build_capabilities(self) -> dict[str, Any]:
        capabilities: dict[str, Any] = {}
        for capability in self._capabilities:
            capabilities.update(capability.get_capabilities())
        capabilities["logging"] = {}
        capabilities["completions"] = {}
        return capabilities

    def _handle_shutdown(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        try:
            if not self._session.capabilities_shut_down:
                self._session.capabilities_shut_down = True
                for capability in self._capabilities:
                    capability.shutdown()
        except Exception as e:
            self.log_message(
                "error", f"Error during capability shutdown: {e}", "Server.shutdown"
            )
            return JsonRpcMessage.failure(INTERNAL_ERROR, str(e), message.id)
        finally:
            self._session.begin_shutdown()

        return JsonRpcMessage.success({}, message.id)

    def _handle_set_level(self, message: JsonRpcMessage) -> JsonRpcMessage:
        params = message.params if isinstance(message.params, dict) else {}
        level = params.get("level")
        if not is_valid_log_level(level):
            valid_levels = ", ".join(LOG_LEVEL_PRIORITIES)
            return JsonRpcMessage.failure(
                INVALID_PARAMS,
                f"Invalid or missing log level. Must be one of: {valid_levels}",
                message.id,
            )

        self._session.client_log_level = level.lower()
        self.log_message("info", f"Client log level set to: {self._session.client_log_level}")
        return JsonRpcMessage.success({}, message.id)

    # -- logging -------------------------------------------------------------

    def log_message(
        self,
        level: str,
        content: str,
        logger_name: str | None = None,
        data: Any | None = None,
    ) -> None:
        """Log locally and, if the client asked for it, forward to the client.

        Entries are forwarded as ``notifications/message`` when a transport
        able to push messages is connected, the client has set a log level
        and the entry's severity is at or above that level. Forwarding
        failures are logged locally and never propagate.

        Args:
            level: Syslog-style severity (emergency ... debug).
            content: Log message text.
            logger_name: Optional name of the component logging.
            data: Optional structured data.
        """
        level = level.lower() if is_valid_log_level(level) else "info"

        parts = []
        if logger_name:
            parts.append(f"{logger_name}:")
        parts.append(content)
        if data is not None:
            parts.append(f"| Data: {json.dumps(data, default=str)}")
        logger.log(PYTHON_LOG_LEVELS[level], " ".join(parts))

        transport = self._transport
        if transport is None or not transport.supports_server_push:
            return
        if not self._session.should_forward(level):
            return

        params: dict[str, Any] = {"level": level, "message": content}
        if data is not None:
            params["data"] = data
        if logger_name is not None:
            params["logger"] = logger_name

        try:
            transport.send(JsonRpcMessage.notification("notifications/message", params))
        except Exception as e:
            logger.warning("Failed to send log notification to client: %s", e)

    # -- context manager -----------------------------------------------------

    def __enter__(self) -> MCPServer:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.shutdown()


def _error_code(error: Exception) -> int:
    """Pick the JSON-RPC error code for an exception raised while handling."""
    if isinstance(error, JsonRpcError):
        return error.code
    code = getattr(error, "code", None)
    if isinstance(code, int) and not isinstance(code, bool) and code != 0:
        return code
    return INTERNAL_ERROR


def _error_message(error: Exception) -> str:
    if isinstance(error, JsonRpcError):
        return error.message
    return str(error) or type(error).__name__
