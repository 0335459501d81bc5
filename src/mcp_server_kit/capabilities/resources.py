"""Resources capability.

Exposes registered resources through resources/list and resources/read.
A resource URI may be a template whose ``{param}`` segments are matched
against the requested URI and passed to ``Resource.read()``.
"""

from __future__ import annotations

import base64
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from mcp_server_kit.capabilities.base import Capability
from mcp_server_kit.protocol.errors import InvalidParamsError, MethodNotSupportedError
from mcp_server_kit.protocol.jsonrpc import JsonRpcMessage
from mcp_server_kit.tools.base import ContentAnnotations

logger = logging.getLogger(__name__)

_TEMPLATE_PARAM = re.compile(r"\\\{([A-Za-z_][A-Za-z0-9_]*)\\\}")


def match_uri_template(template: str, uri: str) -> dict[str, str] | None:
    """Match a URI against a template.

    Each ``{name}`` segment matches one or more characters other than '/'.

    Args:
        template: URI template, e.g. ``file:///{name}``.
        uri: Requested URI.

    Returns:
        Extracted parameters, or None if the URI does not match.
    """
    pattern = _TEMPLATE_PARAM.sub(r"(?P<\1>[^/]+)", re.escape(template))
    match = re.fullmatch(pattern, uri)
    if match is None:
        return None
    return match.groupdict()


def resolve_uri(template: str, parameters: dict[str, Any]) -> str:
    """Substitute parameters into a URI template."""
    uri = template
    for key, value in parameters.items():
        uri = uri.replace(f"{{{key}}}", str(value))
    return uri


class Resource(ABC):
    """Abstract base class for resources.

    Subclasses set ``uri`` and ``description`` as class attributes and
    implement ``read()``.
    """

    uri: str = ""
    description: str | None = None

    def __init__(
        self,
        name: str,
        mime_type: str | None = None,
        size: int | None = None,
        annotations: ContentAnnotations | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.mime_type = mime_type
        self.size = size
        self.annotations = annotations
        self.config: dict[str, Any] = dict(config or {})
        if not self.uri:
            self.uri = type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP resources/list format."""
        data: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.description is not None:
            data["description"] = self.description
        if self.mime_type is not None:
            data["mimeType"] = self.mime_type
        if self.size is not None:
            data["size"] = self.size
        if self.annotations is not None:
            annotation_data = self.annotations.to_dict()
            if annotation_data:
                data["annotations"] = annotation_data
        return data

    @abstractmethod
    def read(self, parameters: dict[str, str]) -> dict[str, Any]:
        """Read the resource.

        Args:
            parameters: Values extracted from the requested URI.

        Returns:
            Resource contents (see ``text_contents``/``blob_contents``).
        """

    def text_contents(
        self,
        text: str,
        mime_type: str | None = "text/plain",
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build text resource contents for the (resolved) URI."""
        contents: dict[str, Any] = {"uri": resolve_uri(self.uri, parameters or {})}
        if mime_type is not None:
            contents["mimeType"] = mime_type
        contents["text"] = text
        return contents

    def blob_contents(
        self, data: bytes, mime_type: str, parameters: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Build binary resource contents for the (resolved) URI."""
        return {
            "uri": resolve_uri(self.uri, parameters or {}),
            "blob": base64.b64encode(data).decode("ascii"),
            "mimeType": mime_type,
        }


class FileResource(Resource):
    """Exposes the files directly inside a directory as ``file:///{filename}``."""

    uri = "file:///{filename}"
    description = "Files in the server's shared directory."

    def __init__(self, root: str | Path = ".", name: str = "files") -> None:
        super().__init__(name, mime_type="text/plain")
        self._root = Path(root).resolve()

    def read(self, parameters: dict[str, str]) -> dict[str, Any]:
        filename = parameters.get("filename", "")
        path = (self._root / filename).resolve()
        if path.parent != self._root:
            raise PermissionError(f"Access denied: {filename}")
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {filename}")
        return self.text_contents(
            path.read_text(encoding="utf-8", errors="replace"), parameters=parameters
        )


class ResourcesCapability(Capability):
    """Capability routing resource requests to registered resources.

    Resources are keyed by URI template and matched in registration order.
    """

    METHODS = ("resources/list", "resources/read")

    def __init__(self) -> None:
        self._resources: dict[str, Resource] = {}

    @property
    def name(self) -> str:
        return "resources"

    @property
    def resources(self) -> list[Resource]:
        """Get registered resources in registration order."""
        return list(self._resources.values())

    def add_resource(self, resource: Resource) -> None:
        """Register a resource.

        Args:
            resource: Resource to expose to clients.
        """
        self._resources[resource.uri] = resource

    def get_capabilities(self) -> dict[str, Any]:
        return {"resources": {"subscribe": False, "listChanged": False}}

    def can_handle_message(self, message: JsonRpcMessage) -> bool:
        return message.method in self.METHODS

    def handle_message(self, message: JsonRpcMessage) -> JsonRpcMessage | None:
        if message.method == "resources/list":
            resources = [resource.to_dict() for resource in self._resources.values()]
            return JsonRpcMessage.success({"resources": resources}, message.id)
        if message.method == "resources/read":
            return self._handle_read(message)
        raise MethodNotSupportedError(str(message.method))

    def _handle_read(self, message: JsonRpcMessage) -> JsonRpcMessage:
        params = message.params if isinstance(message.params, dict) else {}
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise InvalidParamsError("Missing uri parameter")

        for resource in self._resources.values():
            parameters = match_uri_template(resource.uri, uri)
            if parameters is None:
                continue
            try:
                contents = resource.read(parameters)
            except Exception as e:
                logger.warning("Reading resource %s failed: %s", uri, e)
                return JsonRpcMessage.success(
                    {"contents": [{"type": "text", "text": str(e)}], "isError": True},
                    message.id,
                )
            return JsonRpcMessage.success({"contents": [contents]}, message.id)

        raise InvalidParamsError(f"Resource not found: {uri}")
