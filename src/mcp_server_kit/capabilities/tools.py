"""Tools capability.

Exposes registered tools through tools/list, tools/call and
completion/complete.
"""

from __future__ import annotations

import logging
from typing import Any

from mcp_server_kit.capabilities.base import Capability
from mcp_server_kit.protocol.errors import (
    METHOD_NOT_FOUND,
    InvalidParamsError,
    JsonRpcError,
    MethodNotSupportedError,
)
from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage
from mcp_server_kit.tools.base import Tool, ToolResult, empty_completion, text_content

logger = logging.getLogger(__name__)

COMPLETION_REF_TYPES = ("ref/prompt", "ref/tool")


class ToolsCapability(Capability):
    """Capability routing tool requests to registered tools.

    Tools are keyed by name; registering a second tool with the same name
    replaces the first.
    """

    METHODS = ("tools/list", "tools/call", "completion/complete")

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    @property
    def name(self) -> str:
        return "tools"

    @property
    def tools(self) -> list[Tool]:
        """Get registered tools in registration order."""
        return list(self._tools.values())

    def add_tool(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool to expose to clients.
        """
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> Tool | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    def get_capabilities(self) -> dict[str, Any]:
        return {"tools": {"listChanged": False}}

    def can_handle_message(self, message: JsonRpcMessage) -> bool:
        return message.method in self.METHODS

    def handle_message(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        if message.method == "tools/list":
            return self._handle_list(message)
        if message.method == "tools/call":
            return self._handle_call(message)
        if message.method == "completion/complete":
            return self._handle_complete(message)
        raise MethodNotSupportedError(str(message.method))

    def initialize(self) -> None:
        for tool in self._tools.values():
            tool.initialize()

    def shutdown(self) -> None:
        for tool in self._tools.values():
            tool.shutdown()

    def _handle_list(self, message: JsonRpcMessage) -> JsonRpcMessage:
        tools = [tool.to_dict() for tool in self._tools.values()]
        return JsonRpcMessage.success({"tools": tools}, message.id)

    def _handle_call(self, message: JsonRpcMessage) -> JsonRpcMessage:
        """Run a tool; failures are reported to the model as error content."""
        params = message.params if isinstance(message.params, dict) else {}
        tool_name = params.get("name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}

        result = self._call(tool_name, arguments)
        return JsonRpcMessage.success(result.to_dict(), message.id)

    def _call(self, tool_name: Any, arguments: Any) -> ToolResult:
        if not isinstance(tool_name, str) or not tool_name:
            return ToolResult([text_content("Invalid or missing tool name.")], is_error=True)

        tool = self._tools.get(tool_name)
        if tool is None:
            return ToolResult([text_content(f"Tool not found: {tool_name}")], is_error=True)

        if not isinstance(arguments, dict):
            return ToolResult(
                [text_content("Invalid arguments format: arguments must be an object/map.")],
                is_error=True,
            )

        try:
            return ToolResult(tool.execute(arguments))
        except Exception as e:
            logger.warning("Tool '%s' failed: %s", tool_name, e)
            return ToolResult(
                [text_content(f"Error executing tool '{tool_name}': {e}")],
                is_error=True,
            )

    def _handle_complete(self, message: JsonRpcMessage) -> JsonRpcMessage:
        params = message.params if isinstance(message.params, dict) else {}

        ref = params.get("ref")
        if not isinstance(ref, dict):
            raise InvalidParamsError('Missing or invalid "ref" parameter for completion/complete')
        argument = params.get("argument")
        if not isinstance(argument, dict):
            raise InvalidParamsError(
                'Missing or invalid "argument" parameter for completion/complete'
            )

        ref_type = ref.get("type")
        if not isinstance(ref_type, str):
            raise InvalidParamsError('Invalid "ref.type" for completion/complete')
        if ref_type not in COMPLETION_REF_TYPES:
            raise InvalidParamsError(f'Unsupported "ref.type" for tool completion: {ref_type}')

        tool_name = ref.get("name")
        if not isinstance(tool_name, str):
            raise InvalidParamsError(
                'Missing or invalid "ref.name" (tool name) for completion/complete'
            )

        argument_name = argument.get("name")
        if not isinstance(argument_name, str):
            raise InvalidParamsError(
                'Missing or invalid "argument.name" for completion/complete'
            )
        value = argument.get("value", "")

        tool = self._tools.get(tool_name)
        if tool is None:
            raise JsonRpcError(METHOD_NOT_FOUND, f"Tool not found for completion: {tool_name}")

        other_arguments = params.get("arguments")
        if not isinstance(other_arguments, dict):
            other_arguments = {}

        suggestions = tool.get_completion_suggestions(argument_name, value, other_arguments)
        if not isinstance(suggestions, dict) or not isinstance(suggestions.get("values"), list):
            logger.warning(
                "Tool %s provided invalid suggestions format for argument '%s'",
                tool_name,
                argument_name,
            )
            suggestions = empty_completion()

        return JsonRpcMessage.success({"completion": suggestions}, message.id)
