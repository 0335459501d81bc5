"""MCP protocol layer: JSON-RPC messages, lifecycle and transports."""

from mcp_server_kit.protocol.errors import (
    AUTHORIZATION_FAILED,
    AUTHORIZATION_REQUIRED,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    JsonRpcError,
    MessageTooLargeError,
    MethodNotSupportedError,
    ParseError,
    TransportError,
)
from mcp_server_kit.protocol.http import HttpRequest, HttpResponse, HttpTransport
from mcp_server_kit.protocol.jsonrpc import (
    JsonRpcMessage,
    parse_batch,
    parse_message,
    serialize,
    serialize_batch,
)
from mcp_server_kit.protocol.lifecycle import MCP_PROTOCOL_VERSION, LifecycleState, Session
from mcp_server_kit.protocol.transport import Signal, StdioTransport, Transport

__all__ = [
    "AUTHORIZATION_FAILED",
    "AUTHORIZATION_REQUIRED",
    "HttpRequest",
    "HttpResponse",
    "HttpTransport",
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "InternalError",
    "InvalidParamsError",
    "InvalidRequestError",
    "JsonRpcError",
    "JsonRpcMessage",
    "LifecycleState",
    "MCP_PROTOCOL_VERSION",
    "METHOD_NOT_FOUND",
    "MessageTooLargeError",
    "MethodNotSupportedError",
    "PARSE_ERROR",
    "ParseError",
    "Session",
    "Signal",
    "StdioTransport",
    "Transport",
    "TransportError",
    "parse_batch",
    "parse_message",
    "serialize",
    "serialize_batch",
]
