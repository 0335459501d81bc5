"""HTTP hosting for the MCP server.

Binds an MCPServer to a Starlette application: every exchange on the MCP
endpoint is handed to a fresh HttpTransport and served by one server
cycle. Served by uvicorn.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from mcp_server_kit.protocol.http import HttpRequest, HttpResponse, HttpTransport
from mcp_server_kit.protocol.transport import DEFAULT_MAX_MESSAGE_SIZE
from mcp_server_kit.server import MCPServer

logger = logging.getLogger(__name__)

# Methods routed to the transport, which answers anything but POST with 405
MCP_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def create_app(
    server: MCPServer,
    path: str = "/mcp",
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    debug: bool = False,
) -> Starlette:
    """Create the Starlette application serving an MCP server.

    Args:
        server: Server whose session all exchanges share.
        path: URL path of the MCP endpoint.
        max_message_size: Largest request or response body in bytes.
        debug: Enable Starlette debug mode.

    Returns:
        Starlette application.
    """
    # One session per server: exchanges must not interleave
    lock = threading.Lock()

    def serve_exchange(http_request: HttpRequest) -> HttpResponse:
        with lock:
            transport = HttpTransport(http_request, max_message_size)
            server.connect(transport)
            server.run()
            return transport.get_response()

    async def handle_mcp(request: Request) -> Response:
        http_request = HttpRequest(
            method=request.method,
            headers=dict(request.headers),
            body=await request.body(),
        )
        http_response = await run_in_threadpool(serve_exchange, http_request)
        return Response(
            content=http_response.body,
            status_code=http_response.status_code,
            headers=http_response.headers,
        )

    async def health_check(request: Request) -> Response:
        """Report the server identity and lifecycle state."""
        return JSONResponse(
            {
                "status": "ok",
                "server": server.name,
                "version": server.version,
                "state": server.state.value,
            }
        )

    return Starlette(
        debug=debug,
        routes=[
            Route(path, handle_mcp, methods=MCP_METHODS),
            Route("/health", health_check, methods=["GET"]),
        ],
    )


async def run_http_server(
    server: MCPServer,
    host: str = "127.0.0.1",
    port: int = 8080,
    path: str = "/mcp",
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    log_level: str = "info",
) -> None:
    """Serve an MCP server over HTTP until interrupted.

    Args:
        server: Server to expose.
        host: Host to bind to.
        port: Port to bind to.
        path: URL path of the MCP endpoint.
        max_message_size: Largest request or response body in bytes.
        log_level: uvicorn log level.
    """
    app = create_app(server, path=path, max_message_size=max_message_size)
    logger.info("Starting MCP HTTP server on http://%s:%s%s", host, port, path)

    config: dict[str, Any] = {
        "host": host,
        "port": port,
        "log_level": log_level,
        "access_log": False,
    }
    uvicorn_server = uvicorn.Server(uvicorn.Config(app, **config))

    try:
        await uvicorn_server.serve()
    except Exception as e:
        logger.exception("HTTP server error: %s", e)
        raise
    finally:
        server.shutdown()
