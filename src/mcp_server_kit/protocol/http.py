"""HTTP transport for MCP communication.

One transport instance covers one HTTP exchange: it is built from the
already-buffered request and prepares the response the hosting
application returns. It does not depend on any web framework; see
``mcp_server_kit.http_app`` for the Starlette binding.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field

from mcp_server_kit.protocol.errors import INTERNAL_ERROR, JsonRpcError
from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage
from mcp_server_kit.protocol.transport import (
    DEFAULT_MAX_MESSAGE_SIZE,
    Signal,
    Transport,
)

ACCEPTED_CONTENT_TYPES = ("application/json", "application/json-rpc")

JSON_HEADERS = {"Content-Type": "application/json"}


@dataclass
class HttpRequest:
    """The parts of an HTTP request the transport looks at."""

    method: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str:
        """Get a header value, case-insensitively ('' when absent)."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return ""


@dataclass
class HttpResponse:
    """The response prepared by the transport for one exchange."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> object:
        """Decode the body as JSON."""
        return json.loads(self.body)


class HttpTransport(Transport):
    """HTTP transport handling JSON-RPC over POST request/response.

    JSON-RPC level errors travel in the response body with HTTP 200;
    only requests the transport refuses to read (wrong method or content
    type) and internal serialization failures change the status line.
    """

    supports_server_push = False

    def __init__(
        self,
        request: HttpRequest,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    ) -> None:
        """Initialize the transport.

        Args:
            request: The buffered HTTP request of this exchange.
            max_message_size: Largest body, in bytes, accepted or sent.
        """
        super().__init__(max_message_size)
        self._request = request
        self._response: HttpResponse | None = None
        self._rejection_status: int | None = None
        self._rejection_reason = ""
        self._prefer_sse = False

    @property
    def request(self) -> HttpRequest:
        """Get the request this transport was built from."""
        return self._request

    @property
    def rejection_status(self) -> int | None:
        """HTTP status chosen when the request was rejected, if it was."""
        return self._rejection_status

    @property
    def rejection_reason(self) -> str:
        """Human-readable reason for a rejection."""
        return self._rejection_reason

    @property
    def prefers_sse(self) -> bool:
        """Whether streaming responses were requested."""
        return self._prefer_sse

    def prefer_sse_stream(self, prefer: bool = True) -> None:
        """Record a preference for Server-Sent Events.

        Responses are always plain JSON; the hint is kept for callers
        that want to inspect it.
        """
        self._prefer_sse = prefer

    def receive(self) -> list[JsonRpcMessage] | Signal:
        """Decode the JSON-RPC payload of the request.

        Returns:
            Parsed messages, Signal.REJECTED for a request with the wrong
            HTTP method or content type, or Signal.NOTHING for an empty body.

        Raises:
            TransportError: If the body is oversized or not valid JSON-RPC.
        """
        method = self._request.method.upper()
        if method != "POST":
            self._reject(405, f"Method not allowed: {method}")
            return Signal.REJECTED

        content_type = self._request.header("Content-Type").lower()
        if not any(accepted in content_type for accepted in ACCEPTED_CONTENT_TYPES):
            self._reject(415, f"Unsupported Content-Type: {content_type or '(none)'}")
            return Signal.REJECTED

        body = self._request.body
        stripped = body.strip()
        if not stripped:
            return Signal.NOTHING

        return self.decode(stripped)

    def _reject(self, status: int, reason: str) -> None:
        self.log(f"Rejected request: {reason}")
        self._rejection_status = status
        self._rejection_reason = reason

    def send(self, message: JsonRpcMessage | list[JsonRpcMessage]) -> None:
        """Prepare the HTTP response carrying a message or batch.

        A failure to serialize the payload is replaced by a generic
        INTERNAL_ERROR body with status 500.

        Args:
            message: Message or batch to return to the client.
        """
        try:
            payload = self.encode(message)
        except JsonRpcError as e:
            self.log(f"Error during message serialization: {e.message}")
            error = JsonRpcMessage.failure(
                INTERNAL_ERROR, "Server error: Failed to serialize JSON response.", None
            )
            self._response = HttpResponse(500, dict(JSON_HEADERS), error.to_json().encode())
            return

        status = self._rejection_status or 200
        self._response = HttpResponse(status, dict(JSON_HEADERS), payload.encode("utf-8"))

    def is_closed(self) -> bool:
        """The exchange is complete once its response has been prepared."""
        return self._response is not None

    def get_response(self) -> HttpResponse:
        """Get the prepared response.

        Returns:
            The prepared response, or ``202 Accepted`` with an empty body
            when nothing was sent (the request held only notifications).
        """
        if self._response is None:
            return HttpResponse(202)
        return self._response
