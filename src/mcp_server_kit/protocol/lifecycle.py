"""MCP lifecycle management.

Tracks the session phase (initialize -> operate -> shutdown) and the
per-session settings the client controls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Protocol version reported by the server, whatever the client asked for
MCP_PROTOCOL_VERSION = "2025-03-26"

# Syslog-style severities accepted by logging/setLevel (lower is more severe)
LOG_LEVEL_PRIORITIES = {
    "emergency": 0,
    "alert": 1,
    "critical": 2,
    "error": 3,
    "warning": 4,
    "notice": 5,
    "info": 6,
    "debug": 7,
}

# Mapping of MCP severities onto the logging module's levels
PYTHON_LOG_LEVELS = {
    "emergency": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "notice": logging.INFO,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def is_valid_log_level(level: Any) -> bool:
    """Check if a value names one of the MCP log severities."""
    return isinstance(level, str) and level.lower() in LOG_LEVEL_PRIORITIES


class LifecycleState(Enum):
    """MCP session lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    SHUTTING_DOWN = "shuttingDown"
    SHUTDOWN = "shutdown"


@dataclass
class Session:
    """State of the single logical session served by an MCPServer."""

    state: LifecycleState = LifecycleState.UNINITIALIZED
    client_log_level: str | None = None
    client_info: dict[str, Any] | None = None
    client_capabilities: dict[str, Any] | None = None
    capabilities_shut_down: bool = False
    was_initialized: bool = False

    @property
    def is_initialized(self) -> bool:
        """Check if the session has completed the initialize handshake."""
        return self.state == LifecycleState.INITIALIZED

    @property
    def is_shutting_down(self) -> bool:
        """Check if shutdown has been requested or completed."""
        return self.state in (LifecycleState.SHUTTING_DOWN, LifecycleState.SHUTDOWN)

    def mark_initialized(self, params: dict[str, Any]) -> None:
        """Record a successful initialize handshake.

        Args:
            params: Parameters of the initialize request.
        """
        client_info = params.get("clientInfo")
        capabilities = params.get("capabilities")
        self.client_info = client_info if isinstance(client_info, dict) else None
        self.client_capabilities = capabilities if isinstance(capabilities, dict) else {}
        self.was_initialized = True
        self.state = LifecycleState.INITIALIZED

    def begin_shutdown(self) -> None:
        """Move to SHUTTING_DOWN unless already terminal."""
        if self.state != LifecycleState.SHUTDOWN:
            self.state = LifecycleState.SHUTTING_DOWN

    def finish_shutdown(self) -> None:
        """Enter the terminal SHUTDOWN state."""
        self.state = LifecycleState.SHUTDOWN

    def should_forward(self, level: str) -> bool:
        """Decide whether a log entry passes the client's threshold.

        Args:
            level: Severity of the entry.

        Returns:
            True if the client asked for entries at this severity.
        """
        if self.client_log_level is None:
            return False
        entry_priority = LOG_LEVEL_PRIORITIES.get(level.lower(), LOG_LEVEL_PRIORITIES["debug"])
        threshold = LOG_LEVEL_PRIORITIES.get(self.client_log_level, LOG_LEVEL_PRIORITIES["debug"])
        return entry_priority <= threshold
