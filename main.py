#!/usr/bin/env python3
"""mcp-server-kit - Main entry point.

Runs the Model Context Protocol server over stdio (default) or HTTP.

================================================================================
DEVELOPER GUIDE: Adding Tools
================================================================================

1. CREATE YOUR TOOL
   Subclass ``mcp_server_kit.tools.base.Tool``: set ``name``, ``description``
   and ``parameters``, then implement ``run()`` returning content items.

    class EchoTool(Tool):
        name = "echo"
        description = "Echoes its input."
        parameters = (Parameter("message", "string", "Text to echo."),)

        def run(self, arguments):
            return [text_content(arguments["message"])]

2. REGISTER IT
   Add it to the tools capability in ``mcp_server_kit.cli.build_server``:

    tools.add_tool(EchoTool())

   The tool then appears in tools/list and can be invoked with tools/call.

CONFIGURATION
-------------
See config/server.yaml. Set ``authorization.token`` to require clients to
present the same secret in MCP_AUTHORIZATION_TOKEN.
================================================================================
"""

import sys

from mcp_server_kit.cli import main

if __name__ == "__main__":
    sys.exit(main())
