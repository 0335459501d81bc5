"""Tools exposed through the tools capability."""

from mcp_server_kit.tools.base import (
    ContentAnnotations,
    Parameter,
    Tool,
    ToolAnnotations,
    ToolResult,
    audio_content,
    embedded_resource,
    image_content,
    text_content,
)
from mcp_server_kit.tools.builtin import (
    DirectoryListingTool,
    FetchWebPageTool,
    FileReaderTool,
    ReplaceTextTool,
    SimpleCalculatorTool,
    WebSearchTool,
)

__all__ = [
    "ContentAnnotations",
    "DirectoryListingTool",
    "FetchWebPageTool",
    "FileReaderTool",
    "Parameter",
    "ReplaceTextTool",
    "SimpleCalculatorTool",
    "Tool",
    "ToolAnnotations",
    "ToolResult",
    "WebSearchTool",
    "audio_content",
    "embedded_resource",
    "image_content",
    "text_content",
]
