"""Test doubles shared by the test modules."""

from __future__ import annotations

import json
from typing import Any

from mcp_server_kit.capabilities.base import Capability
from mcp_server_kit.protocol.errors import MethodNotSupportedError, TransportError
from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage
from mcp_server_kit.protocol.transport import DEFAULT_MAX_MESSAGE_SIZE, Signal, Transport


def request(method: str, params: Any = None, msg_id: int | str = 1) -> dict[str, Any]:
    """Build a request object."""
    data: dict[str, Any] = {"jsonrpc": "2.0", "id": msg_id, "method": method}
    if params is not None:
        data["params"] = params
    return data


def notification(method: str, params: Any = None) -> dict[str, Any]:
    """Build a notification object."""
    data: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        data["params"] = params
    return data


def init_request(msg_id: int | str = 1, protocol_version: Any = "2025-03-26") -> dict[str, Any]:
    """Build an initialize request."""
    params: dict[str, Any] = {
        "clientInfo": {"name": "test-client", "version": "1.0"},
        "capabilities": {},
    }
    if protocol_version is not None:
        params["protocolVersion"] = protocol_version
    return request("initialize", params, msg_id)


def message(data: dict[str, Any]) -> JsonRpcMessage:
    """Convert a request/notification object to a message."""
    return JsonRpcMessage.from_dict(data)


class ScriptedTransport(Transport):
    """Transport fed from a script of raw units and signals.

    Each script entry is a raw JSON string, a Python object (encoded to
    JSON) or a Signal. Once the script is exhausted the transport reports
    CLOSED. Sent payloads are recorded as decoded JSON.
    """

    def __init__(
        self,
        script: list[Any],
        fail_sends: bool = False,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    ) -> None:
        super().__init__(max_message_size)
        self._script = list(script)
        self._closed = False
        self.fail_sends = fail_sends
        self.sent: list[Any] = []
        self.receive_calls = 0

    def receive(self) -> list[JsonRpcMessage] | Signal:
        self.receive_calls += 1
        if not self._script:
            self._closed = True
            return Signal.CLOSED
        unit = self._script.pop(0)
        if isinstance(unit, Signal):
            return unit
        if not isinstance(unit, str):
            unit = json.dumps(unit)
        return self.decode(unit)

    def send(self, message: JsonRpcMessage | list[JsonRpcMessage]) -> None:
        if self.fail_sends:
            raise TransportError("write failed", fatal=True)
        self.sent.append(json.loads(self.encode(message)))

    def is_closed(self) -> bool:
        return self._closed

    @property
    def remaining(self) -> int:
        return len(self._script)


class RecordingCapability(Capability):
    """Capability answering ``<prefix>/echo`` and recording lifecycle calls."""

    def __init__(
        self,
        prefix: str = "echo",
        calls: list[str] | None = None,
        capabilities: dict[str, Any] | None = None,
        fail_initialize: bool = False,
        fail_shutdown: bool = False,
    ) -> None:
        self.prefix = prefix
        self.calls = calls if calls is not None else []
        self._capabilities = capabilities if capabilities is not None else {prefix: {}}
        self.fail_initialize = fail_initialize
        self.fail_shutdown = fail_shutdown
        self.handled: list[JsonRpcMessage] = []

    @property
    def name(self) -> str:
        return self.prefix

    def get_capabilities(self) -> dict[str, Any]:
        return self._capabilities

    def can_handle_message(self, message: JsonRpcMessage) -> bool:
        return bool(message.method and message.method.startswith(f"{self.prefix}/"))

    def handle_message(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        self.handled.append(message)
        if message.method == f"{self.prefix}/echo":
            if not message.is_request():
                return None
            return JsonRpcMessage.success(
                {"handler": self.prefix, "params": message.params}, message.id
            )
        if message.method == f"{self.prefix}/fail":
            raise RuntimeError("capability exploded")
        if message.method == f"{self.prefix}/coded":
            error = RuntimeError("coded failure")
            error.code = -32050  # type: ignore[attr-defined]
            raise error
        raise MethodNotSupportedError(str(message.method))

    def initialize(self) -> None:
        self.calls.append(f"{self.prefix}:initialize")
        if self.fail_initialize:
            raise RuntimeError(f"{self.prefix} failed to start")

    def shutdown(self) -> None:
        self.calls.append(f"{self.prefix}:shutdown")
        if self.fail_shutdown:
            raise RuntimeError(f"{self.prefix} failed to stop")
