"""Capability base class.

Defines the interface that every capability must implement to plug
protocol methods into the server.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage


class Capability(ABC):
    """Abstract base class for all capabilities.

    A capability declares what it supports during ``initialize``, claims
    the methods it can handle and answers them. The server asks
    capabilities in registration order and the first one that claims a
    method handles it.
    """

    @property
    def name(self) -> str:
        """Return the capability identifier used for lookups and logs."""
        return type(self).__name__

    @abstractmethod
    def get_capabilities(self) -> dict[str, Any]:
        """Return the entries merged into the server's capabilities object.

        Returns:
            Mapping of capability name to its settings.
        """

    @abstractmethod
    def can_handle_message(self, message: JsonRpcMessage) -> bool:
        """Check if this capability handles the message's method.

        Args:
            message: Incoming request or notification.

        Returns:
            True if the capability claims the message.
        """

    @abstractmethod
    def handle_message(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        """Handle a request or notification.

        Args:
            message: Incoming request or notification.

        Returns:
            The response, or None for notifications.

        Raises:
            MethodNotSupportedError: If the method is not supported.
            JsonRpcError: For other failures with a specific error code.
        """

    def initialize(self) -> None:
        """Called once when the client initializes the session."""

    def shutdown(self) -> None:
        """Called once when the session shuts down."""
