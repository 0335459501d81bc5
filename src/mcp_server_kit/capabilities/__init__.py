"""Capabilities plugging protocol methods into the server."""

from mcp_server_kit.capabilities.base import Capability
from mcp_server_kit.capabilities.resources import FileResource, Resource, ResourcesCapability
from mcp_server_kit.capabilities.tools import ToolsCapability

__all__ = [
    "Capability",
    "FileResource",
    "Resource",
    "ResourcesCapability",
    "ToolsCapability",
]
