"""JSON-RPC error codes and the exception hierarchy built on them.

Capabilities raise these exceptions to choose the error code of the
response; the server maps anything else to INTERNAL_ERROR.
"""

from __future__ import annotations

from typing import Any

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Implementation-defined codes (outside the reserved range)
AUTHORIZATION_REQUIRED = -32000
AUTHORIZATION_FAILED = -32001


class JsonRpcError(Exception):
    """JSON-RPC error with code and message."""

    code: int = INTERNAL_ERROR
    # Id of the request the error belongs to, when one could be recovered
    request_id: int | str | None = None

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        """Initialize the error.

        Args:
            code: JSON-RPC error code.
            message: Human-readable error message.
            data: Optional additional error data.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class ParseError(JsonRpcError):
    """Raised when a payload is not valid JSON."""

    def __init__(self, message: str, data: Any | None = None) -> None:
        super().__init__(PARSE_ERROR, message, data)


class InvalidRequestError(JsonRpcError):
    """Raised when valid JSON does not have the shape of a JSON-RPC message."""

    def __init__(self, message: str, data: Any | None = None) -> None:
        super().__init__(INVALID_REQUEST, message, data)


class MethodNotSupportedError(JsonRpcError):
    """Raised when a capability is asked to handle a method it does not support."""

    def __init__(self, method: str) -> None:
        super().__init__(METHOD_NOT_FOUND, f"Method not supported: {method}")
        self.method = method


class InvalidParamsError(JsonRpcError):
    """Raised when a request carries missing or malformed parameters."""

    def __init__(self, message: str, data: Any | None = None) -> None:
        super().__init__(INVALID_PARAMS, message, data)


class InternalError(JsonRpcError):
    """Raised for failures inside the server that are not the client's fault."""

    def __init__(self, message: str, data: Any | None = None) -> None:
        super().__init__(INTERNAL_ERROR, message, data)


class TransportError(JsonRpcError):
    """Raised when a transport cannot decode, encode or move a payload.

    A fatal error means the channel itself is unusable and the session
    must end. Non-fatal errors only spoil the current unit; when that unit
    was request-shaped its id is kept in ``request_id`` so an error
    response can still be addressed.
    """

    def __init__(
        self,
        message: str,
        code: int = INTERNAL_ERROR,
        *,
        fatal: bool = False,
        request_id: int | str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message.
            code: JSON-RPC error code describing the failure.
            fatal: Whether the transport can no longer be used.
            request_id: Id of the offending request, if one was discoverable.
        """
        super().__init__(code, message)
        self.fatal = fatal
        self.request_id = request_id


class MessageTooLargeError(TransportError):
    """Raised when a payload exceeds the transport's size limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Message too large: {size} bytes exceeds {limit} limit",
            PARSE_ERROR,
            fatal=True,
        )
        self.size = size
        self.limit = limit
