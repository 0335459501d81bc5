"""JSON-RPC 2.0 message parsing and formatting.

Implements the JSON-RPC 2.0 specification for MCP protocol communication.
A single immutable ``JsonRpcMessage`` type represents requests,
notifications, success responses and error responses.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from mcp_server_kit.protocol.errors import (
    InternalError,
    InvalidRequestError,
    JsonRpcError,
    ParseError,
)

JSONRPC_VERSION = "2.0"


class _Absent:
    """Marker for a response member that is not present on the wire."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()


def _is_valid_id(value: Any) -> bool:
    """Check that a value may be used as a message id (string or integer)."""
    return isinstance(value, str) or (isinstance(value, int) and not isinstance(value, bool))


def discover_id(data: Any) -> int | str | None:
    """Recover the id of a request-shaped object, if it has a usable one.

    Args:
        data: Decoded JSON value.

    Returns:
        The id, or None when it is missing or not a string/integer.
    """
    if isinstance(data, dict):
        msg_id = data.get("id")
        if _is_valid_id(msg_id):
            return msg_id
    return None


@dataclass(frozen=True)
class JsonRpcMessage:
    """Represents one JSON-RPC 2.0 message.

    A message is a request when it has both ``method`` and ``id``, a
    notification when it has a ``method`` but no ``id``, and a response
    when it has no ``method`` and exactly one of ``result``/``error``.
    """

    method: str | None = None
    params: dict[str, Any] | list[Any] | None = None
    id: int | str | None = None
    result: Any = ABSENT
    error: dict[str, Any] | None = None
    jsonrpc: str = JSONRPC_VERSION

    def __post_init__(self) -> None:
        if self.has_result and self.error is not None:
            raise ValueError("A response cannot carry both result and error")
        if self.method is not None and (self.has_result or self.error is not None):
            raise ValueError("A request cannot carry result or error")

    @property
    def has_result(self) -> bool:
        """Whether a result member is present (it may be null)."""
        return self.result is not ABSENT

    def is_request(self) -> bool:
        """Check whether this message expects a response."""
        return self.method is not None and self.id is not None

    def is_notification(self) -> bool:
        """Check whether this message must never be answered."""
        return self.method is not None and self.id is None

    def is_response(self) -> bool:
        """Check whether this message answers an earlier request."""
        return self.method is None and (self.has_result != (self.error is not None))

    def is_error(self) -> bool:
        """Check whether this message is an error response."""
        return self.error is not None

    # -- factories ---------------------------------------------------------

    @classmethod
    def request(
        cls,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
        msg_id: int | str = 1,
    ) -> JsonRpcMessage:
        """Create a request message.

        Args:
            method: Method name.
            params: Optional parameters.
            msg_id: Request id.

        Returns:
            The request message.
        """
        return cls(method=method, params=params, id=msg_id)

    @classmethod
    def notification(
        cls, method: str, params: dict[str, Any] | list[Any] | None = None
    ) -> JsonRpcMessage:
        """Create a notification message (no id, never answered).

        Args:
            method: Notification method name.
            params: Optional parameters.

        Returns:
            The notification message.
        """
        return cls(method=method, params=params)

    @classmethod
    def success(cls, result: Any, msg_id: int | str | None) -> JsonRpcMessage:
        """Create a successful response.

        Args:
            result: Result payload.
            msg_id: Id of the request being answered.

        Returns:
            The response message.
        """
        return cls(id=msg_id, result=result)

    @classmethod
    def failure(
        cls,
        code: int,
        message: str,
        msg_id: int | str | None,
        data: Any | None = None,
    ) -> JsonRpcMessage:
        """Create an error response.

        Args:
            code: Error code.
            message: Error message.
            msg_id: Id of the request being answered (None for parse errors).
            data: Optional error data.

        Returns:
            The error response message.
        """
        error_obj: dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error_obj["data"] = data
        return cls(id=msg_id, error=error_obj)

    @classmethod
    def from_exception(cls, exc: JsonRpcError, msg_id: int | str | None) -> JsonRpcMessage:
        """Create an error response describing a JsonRpcError."""
        return cls.failure(exc.code, exc.message, msg_id, exc.data)

    # -- wire format -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON object sent on the wire.

        Returns:
            Dictionary in JSON-RPC 2.0 format.

        Raises:
            InternalError: If the message has neither a method nor a response member.
        """
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.error is not None:
            data["id"] = self.id
            data["error"] = self.error
        elif self.has_result:
            data["id"] = self.id
            data["result"] = self.result
        else:
            if not self.method:
                raise InternalError("Request message must have a method")
            data["method"] = self.method
            if self.params is not None:
                data["params"] = self.params
            if self.id is not None:
                data["id"] = self.id
        return data

    def to_json(self) -> str:
        """Serialize to a single line of JSON."""
        return _dump(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> JsonRpcMessage:
        """Build a message from a decoded JSON value.

        Args:
            data: Decoded JSON value.

        Returns:
            The parsed message.

        Raises:
            InvalidRequestError: If the value is not a valid JSON-RPC message.
        """
        if not isinstance(data, dict):
            raise InvalidRequestError("Invalid Request: message must be an object")

        if data.get("jsonrpc") != JSONRPC_VERSION:
            raise _invalid("Invalid Request: jsonrpc must be '2.0'", data)

        if "method" not in data and ("result" in data or "error" in data):
            return cls._response_from_dict(data)

        method = data.get("method")
        if not isinstance(method, str) or not method:
            raise _invalid("Invalid Request: missing or invalid method name", data)

        params = data.get("params")
        if params is not None and not isinstance(params, dict | list):
            raise _invalid("Invalid Request: params must be an object or array", data)

        msg_id = data.get("id")
        if msg_id is not None and not _is_valid_id(msg_id):
            raise InvalidRequestError("Invalid Request: id must be integer or string")

        return cls(method=method, params=params, id=msg_id)

    @classmethod
    def _response_from_dict(cls, data: dict[str, Any]) -> JsonRpcMessage:
        if "id" not in data:
            raise InvalidRequestError("Invalid Request: response must include id")
        msg_id = data["id"]
        if msg_id is not None and not _is_valid_id(msg_id):
            raise InvalidRequestError("Invalid Request: id must be integer or string")

        if "result" in data and "error" in data:
            raise _invalid("Invalid Request: response cannot have both result and error", data)

        if "result" in data:
            return cls(id=msg_id, result=data["result"])

        error = data["error"]
        if (
            not isinstance(error, dict)
            or not isinstance(error.get("code"), int)
            or isinstance(error.get("code"), bool)
            or not isinstance(error.get("message"), str)
        ):
            raise _invalid("Invalid Request: invalid error object in response", data)
        return cls(id=msg_id, error=error)


def _invalid(message: str, data: Any) -> InvalidRequestError:
    """Build an InvalidRequestError that remembers the offending request id."""
    error = InvalidRequestError(message)
    error.request_id = discover_id(data)
    return error


def _dump(data: Any) -> str:
    try:
        return json.dumps(data, separators=(",", ":"), ensure_ascii=True, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise InternalError(f"Failed to encode JSON-RPC message: {e}") from e


def decode_json(raw: str | bytes) -> Any:
    """Decode raw JSON text.

    Args:
        raw: JSON text (bytes are decoded as UTF-8).

    Returns:
        The decoded value.

    Raises:
        ParseError: If the text is not valid JSON.
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    except UnicodeDecodeError as e:
        raise ParseError(f"Parse error: payload is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ParseError(f"Parse error: {e}") from e


def parse_message(raw: str | bytes) -> JsonRpcMessage:
    """Parse a single JSON-RPC message.

    Args:
        raw: Raw JSON text.

    Returns:
        Parsed message.

    Raises:
        ParseError: If the JSON is invalid.
        InvalidRequestError: If the JSON is not a valid message object.
    """
    return JsonRpcMessage.from_dict(decode_json(raw))


def parse_batch(raw: str | bytes) -> list[JsonRpcMessage]:
    """Parse a payload holding either one message or a batch.

    A JSON object yields a one-element list, a JSON array yields one
    message per element and ``[]`` yields an empty list.

    Args:
        raw: Raw JSON text.

    Returns:
        List of parsed messages, in payload order.

    Raises:
        ParseError: If the JSON is invalid.
        InvalidRequestError: If the payload or any batch element is malformed.
    """
    data = decode_json(raw)
    if isinstance(data, dict):
        return [JsonRpcMessage.from_dict(data)]
    if not isinstance(data, list):
        raise InvalidRequestError("Invalid Request: payload must be an object or an array")

    messages = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise InvalidRequestError(
                f"Invalid Request: batch element {index} must be an object",
                {"index": index},
            )
        try:
            messages.append(JsonRpcMessage.from_dict(item))
        except InvalidRequestError as e:
            error = InvalidRequestError(f"{e.message} (batch element {index})", {"index": index})
            error.request_id = e.request_id
            raise error from e
    return messages


def serialize(message: JsonRpcMessage) -> str:
    """Serialize one message to single-line JSON."""
    return message.to_json()


def serialize_batch(messages: list[JsonRpcMessage]) -> str:
    """Serialize a batch of messages to one JSON array.

    Raises:
        InternalError: If an item is not a JsonRpcMessage or cannot be encoded.
    """
    items = []
    for message in messages:
        if not isinstance(message, JsonRpcMessage):
            raise InternalError("All batch items must be JsonRpcMessage objects")
        items.append(message.to_dict())
    return _dump(items)


__all__ = [
    "ABSENT",
    "JSONRPC_VERSION",
    "JsonRpcMessage",
    "decode_json",
    "discover_id",
    "parse_batch",
    "parse_message",
    "serialize",
    "serialize_batch",
]
