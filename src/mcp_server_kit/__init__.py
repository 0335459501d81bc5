"""mcp-server-kit: a Model Context Protocol server over stdio and HTTP."""

from mcp_server_kit.server import MCPServer

__version__ = "1.0.0"

__all__ = ["MCPServer", "__version__"]
