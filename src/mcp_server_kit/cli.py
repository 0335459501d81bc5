"""Command line entry point for the MCP server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from mcp_server_kit.capabilities.resources import FileResource, ResourcesCapability
from mcp_server_kit.capabilities.tools import ToolsCapability
from mcp_server_kit.config import LOG_LEVELS, TRANSPORTS, ConfigError, ServerConfig, load_config
from mcp_server_kit.http_app import run_http_server
from mcp_server_kit.protocol.transport import StdioTransport
from mcp_server_kit.server import MCPServer
from mcp_server_kit.tools.builtin import (
    DirectoryListingTool,
    FetchWebPageTool,
    FileReaderTool,
    ReplaceTextTool,
    SimpleCalculatorTool,
    WebSearchTool,
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mcp-server-kit",
        description="Model Context Protocol server over stdio or HTTP",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to server configuration YAML file",
    )
    parser.add_argument(
        "--transport",
        choices=TRANSPORTS,
        default=None,
        help="Transport to serve (overrides the configuration)",
    )
    parser.add_argument("--host", default=None, help="HTTP host to bind to")
    parser.add_argument("--port", type=int, default=None, help="HTTP port to bind to")
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Local log level (overrides the configuration)",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version="mcp-server-kit 1.0.0",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> ServerConfig:
    """Load configuration and apply command line overrides.

    Raises:
        ConfigError: If the configuration is missing or invalid.
    """
    config = load_config(args.config) if args.config is not None else ServerConfig()

    if args.transport is not None:
        config.transport = args.transport
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.log_level is not None:
        config.log_level = args.log_level

    config.validate()
    return config


def build_server(config: ServerConfig) -> MCPServer:
    """Create a server with the built-in tools and resources registered.

    Args:
        config: Server configuration.

    Returns:
        Server ready to be connected to a transport.
    """
    server = MCPServer.from_config(config)

    tools = ToolsCapability()
    tools.add_tool(SimpleCalculatorTool())
    tools.add_tool(FileReaderTool(config.tools_root))
    tools.add_tool(DirectoryListingTool(config.tools_root))
    tools.add_tool(ReplaceTextTool(config.tools_root))
    if config.enable_web_tools:
        tools.add_tool(FetchWebPageTool())
        tools.add_tool(WebSearchTool())
    server.add_capability(tools)

    resources = ResourcesCapability()
    resources.add_resource(FileResource(config.tools_root))
    server.add_capability(resources)

    return server


def main(argv: list[str] | None = None) -> int:
    """Run the MCP server.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)

    try:
        config = resolve_config(args)
    except ConfigError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=config.log_level.upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    server = build_server(config)
    logger.info("Starting %s %s (%s transport)", server.name, server.version, config.transport)

    try:
        if config.transport == "http":
            asyncio.run(
                run_http_server(
                    server,
                    host=config.host,
                    port=config.port,
                    path=config.http_path,
                    max_message_size=config.max_message_size,
                    log_level=config.log_level,
                )
            )
        else:
            server.connect(StdioTransport(max_message_size=config.max_message_size))
            server.run()

    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        server.shutdown()
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error("Server error: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
