"""Transport layer for MCP communication.

Defines the contract every transport binding follows and the STDIO
binding, which reads/writes newline-delimited JSON-RPC over
stdin/stdout.
"""

from __future__ import annotations

import io
import logging
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import TextIO

from mcp_server_kit.protocol.errors import (
    INVALID_REQUEST,
    PARSE_ERROR,
    InternalError,
    InvalidRequestError,
    MessageTooLargeError,
    ParseError,
    TransportError,
)
from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage, parse_batch, serialize_batch

logger = logging.getLogger(__name__)

# Maximum payload size accepted or emitted by a transport (10 MiB)
DEFAULT_MAX_MESSAGE_SIZE = 10 * 1024 * 1024


class Signal(Enum):
    """Non-message outcomes of ``Transport.receive()``."""

    NOTHING = "nothing"  # open, nothing to process right now
    CLOSED = "closed"  # no further input will arrive
    REJECTED = "rejected"  # request unsuitable for this transport


class Transport(ABC):
    """Base class for message transports.

    Provides the shared decode/encode rules (size limit, single message
    vs. batch) so that every binding agrees on the wire contract.
    """

    # Whether server-initiated messages can be delivered outside a response
    supports_server_push: bool = True

    def __init__(self, max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> None:
        """Initialize the transport.

        Args:
            max_message_size: Largest payload, in bytes, accepted or sent.

        Raises:
            ValueError: If max_message_size is not positive.
        """
        if max_message_size <= 0:
            raise ValueError("max_message_size must be positive")
        self._max_message_size = max_message_size
        self._last_unit_was_batch = False

    @property
    def max_message_size(self) -> int:
        """Get the payload size limit in bytes."""
        return self._max_message_size

    @property
    def last_unit_was_batch(self) -> bool:
        """Whether the last decoded unit was a JSON array."""
        return self._last_unit_was_batch

    @abstractmethod
    def receive(self) -> list[JsonRpcMessage] | Signal:
        """Read the next unit of input.

        Returns:
            The messages of one unit (a single message or a batch, possibly
            empty), or a Signal when there are no messages to process.

        Raises:
            TransportError: If the unit cannot be decoded.
        """

    @abstractmethod
    def send(self, message: JsonRpcMessage | list[JsonRpcMessage]) -> None:
        """Transmit one message or a batch as a single wire unit.

        Raises:
            TransportError: If the payload cannot be transmitted.
        """

    @abstractmethod
    def is_closed(self) -> bool:
        """Check whether the transport will deliver no further input."""

    def is_stream_open(self) -> bool:
        """Check whether a streaming response channel is open."""
        return False

    def log(self, message: str) -> None:
        """Log a transport-level diagnostic."""
        logger.info("%s: %s", type(self).__name__, message)

    def decode(self, raw: str | bytes) -> list[JsonRpcMessage]:
        """Decode one raw unit into messages.

        Args:
            raw: Raw payload (already stripped of framing).

        Returns:
            Parsed messages in payload order.

        Raises:
            MessageTooLargeError: If the payload exceeds the size limit.
            TransportError: If the payload is not valid JSON-RPC.
        """
        size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
        if size > self._max_message_size:
            raise MessageTooLargeError(size, self._max_message_size)

        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        self._last_unit_was_batch = text.lstrip().startswith("[")

        try:
            return parse_batch(raw)
        except ParseError as e:
            raise TransportError(e.message, PARSE_ERROR) from e
        except InvalidRequestError as e:
            raise TransportError(e.message, INVALID_REQUEST, request_id=e.request_id) from e

    def encode(self, message: JsonRpcMessage | list[JsonRpcMessage]) -> str:
        """Encode one message or a batch for transmission.

        Raises:
            InternalError: If the message cannot be serialized.
            MessageTooLargeError: If the encoded payload exceeds the size limit.
        """
        if isinstance(message, list):
            payload = serialize_batch(message)
        elif isinstance(message, JsonRpcMessage):
            payload = message.to_json()
        else:
            raise InternalError(f"Cannot send object of type {type(message).__name__}")

        size = len(payload.encode("utf-8"))
        if size > self._max_message_size:
            raise MessageTooLargeError(size, self._max_message_size)
        return payload


class StdioTransport(Transport):
    """STDIO transport for MCP communication.

    Reads JSON-RPC messages from stdin and writes responses to stdout,
    one message or batch per line. Logging goes to stderr to avoid
    corrupting the protocol stream.
    """

    def __init__(
        self,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    ) -> None:
        """Initialize the transport.

        Args:
            stdin: Input stream (defaults to sys.stdin).
            stdout: Output stream (defaults to sys.stdout).
            stderr: Log stream (defaults to sys.stderr).
            max_message_size: Largest line, in bytes, accepted or sent.
        """
        super().__init__(max_message_size)
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr
        self._eof = False

    def receive(self) -> list[JsonRpcMessage] | Signal:
        """Read exactly one line from stdin.

        Lines are read from the underlying binary buffer when there is one,
        so that bytes which are not valid UTF-8 spoil only their own line.

        Returns:
            Parsed messages, Signal.NOTHING for a blank line, or
            Signal.CLOSED on EOF.

        Raises:
            MessageTooLargeError: If a line runs past the size limit.
            TransportError: If the line is not valid UTF-8 or JSON-RPC.
        """
        try:
            line = self._readline()
        except (OSError, ValueError) as e:
            self.log(f"Error reading stdin: {e}")
            self._eof = True
            return Signal.CLOSED

        if not line:  # EOF
            self._eof = True
            return Signal.CLOSED

        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                self.log(f"Error decoding message: {e}")
                raise TransportError(f"Parse error: invalid UTF-8 ({e.reason})", PARSE_ERROR) from e

        line = line.strip()
        if not line:
            return Signal.NOTHING

        try:
            return self.decode(line)
        except TransportError as e:
            self.log(f"Error decoding message: {e.message}")
            raise

    def _readline(self) -> str | bytes:
        limit = self._max_message_size + 1
        buffer = getattr(self._stdin, "buffer", None)
        if isinstance(buffer, (io.BufferedIOBase, io.RawIOBase)):
            line: str | bytes = buffer.readline(limit)
            newline: str | bytes = b"\n"
        else:
            line = self._stdin.readline(limit)
            newline = "\n"

        # A full read without a line end means the line is longer than the limit
        if len(line) >= limit and not line.endswith(newline):
            raise MessageTooLargeError(len(line), self._max_message_size)
        return line

    def send(self, message: JsonRpcMessage | list[JsonRpcMessage]) -> None:
        """Write a message or batch to stdout followed by one newline.

        Args:
            message: Message or batch to write.

        Raises:
            TransportError: If the payload would break line framing or the
                write fails.
        """
        try:
            payload = self.encode(message)
        except InternalError as e:
            raise TransportError(e.message, fatal=True) from e

        if "\n" in payload or "\r" in payload:
            raise TransportError(
                "Message contains embedded newlines, which is not allowed for stdio",
                fatal=True,
            )

        data = payload + "\n"
        try:
            written = self._stdout.write(data)
            self._stdout.flush()
        except (OSError, ValueError) as e:
            raise TransportError(f"Failed to write message to stdout: {e}", fatal=True) from e

        if written is not None and written < len(data):
            raise TransportError("Failed to write complete message to stdout", fatal=True)

    def is_closed(self) -> bool:
        """Check whether stdin has reached EOF."""
        return self._eof

    def log(self, message: str) -> None:
        """Write a log message to stderr.

        Args:
            message: Log message.
        """
        self._stderr.write(f"[MCP] {message}\n")
        self._stderr.flush()
