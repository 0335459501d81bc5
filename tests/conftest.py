"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest
from helpers import RecordingCapability, init_request, message

from mcp_server_kit.server import MCPServer


@pytest.fixture(autouse=True)
def clean_auth_env(monkeypatch: pytest.MonkeyPatch):
    """Make sure no authorization token leaks in from the environment."""
    monkeypatch.delenv("MCP_AUTHORIZATION_TOKEN", raising=False)


@pytest.fixture
def capability() -> RecordingCapability:
    """A capability answering echo/* methods."""
    return RecordingCapability()


@pytest.fixture
def server(capability: RecordingCapability) -> MCPServer:
    """A server with one registered capability."""
    server = MCPServer(name="test-server", version="9.9.9", instructions="Be nice.")
    server.add_capability(capability)
    return server


@pytest.fixture
def initialized_server(server: MCPServer) -> MCPServer:
    """A server that has completed the initialize handshake."""
    response = server.process_message(message(init_request()))
    assert response is not None and not response.is_error()
    return server
