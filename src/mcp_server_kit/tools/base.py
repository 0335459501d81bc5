"""Tool base class and data structures.

Defines the interface that all tools must implement, the argument
declarations the input schema is derived from and helpers building MCP
content items.
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from mcp_server_kit.protocol.errors import InvalidParamsError

CONTENT_AUDIENCES = ("user", "assistant")


@dataclass(frozen=True)
class Parameter:
    """Declaration of one tool argument."""

    name: str
    type: str = "string"
    description: str | None = None
    required: bool = True

    def to_schema(self) -> dict[str, Any]:
        """Convert to a JSON Schema property."""
        schema: dict[str, Any] = {"type": self.type}
        if self.description is not None:
            schema["description"] = self.description
        return schema


@dataclass(frozen=True)
class ToolAnnotations:
    """Behaviour hints reported with a tool in tools/list."""

    title: str | None = None
    read_only_hint: bool | None = None
    destructive_hint: bool | None = None
    idempotent_hint: bool | None = None
    open_world_hint: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP format, leaving out unset hints."""
        data = {
            "title": self.title,
            "readOnlyHint": self.read_only_hint,
            "destructiveHint": self.destructive_hint,
            "idempotentHint": self.idempotent_hint,
            "openWorldHint": self.open_world_hint,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class ContentAnnotations:
    """Audience and priority attached to a content item."""

    audience: tuple[str, ...] | None = None
    priority: float | None = None

    def __post_init__(self) -> None:
        if self.audience is not None:
            for role in self.audience:
                if role not in CONTENT_AUDIENCES:
                    raise ValueError(
                        f"Invalid audience role: {role}. Must be 'user' or 'assistant'."
                    )
        if self.priority is not None and not 0.0 <= self.priority <= 1.0:
            raise ValueError("Priority must be between 0.0 and 1.0.")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.audience is not None:
            data["audience"] = list(self.audience)
        if self.priority is not None:
            data["priority"] = self.priority
        return data


def _annotate(item: dict[str, Any], annotations: ContentAnnotations | None) -> dict[str, Any]:
    if annotations is not None:
        annotation_data = annotations.to_dict()
        if annotation_data:
            item["annotations"] = annotation_data
    return item


def text_content(text: str, annotations: ContentAnnotations | None = None) -> dict[str, Any]:
    """Create a text content item."""
    return _annotate({"type": "text", "text": text}, annotations)


def image_content(
    data: bytes, mime_type: str, annotations: ContentAnnotations | None = None
) -> dict[str, Any]:
    """Create an image content item from raw image bytes."""
    return _annotate(
        {"type": "image", "data": base64.b64encode(data).decode("ascii"), "mimeType": mime_type},
        annotations,
    )


def audio_content(
    data: bytes, mime_type: str, annotations: ContentAnnotations | None = None
) -> dict[str, Any]:
    """Create an audio content item from raw audio bytes."""
    return _annotate(
        {"type": "audio", "data": base64.b64encode(data).decode("ascii"), "mimeType": mime_type},
        annotations,
    )


def embedded_resource(
    resource: dict[str, Any], annotations: ContentAnnotations | None = None
) -> dict[str, Any]:
    """Create a content item embedding resource contents.

    Args:
        resource: Resource contents; must hold a 'text' or a 'blob' key.
        annotations: Optional content annotations.

    Raises:
        ValueError: If the resource has neither text nor blob.
    """
    if "text" not in resource and "blob" not in resource:
        raise ValueError("Embedded resource data must contain either a 'text' or a 'blob' key.")
    return _annotate({"type": "resource", "resource": resource}, annotations)


def empty_completion() -> dict[str, Any]:
    """Completion result offering no suggestions."""
    return {"values": [], "total": 0, "hasMore": False}


@dataclass
class ToolResult:
    """Result of a tools/call request."""

    content: list[dict[str, Any]]
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP result format.

        Returns:
            Dictionary in MCP tools/call result format.
        """
        return {
            "content": self.content,
            "isError": self.is_error,
        }


class Tool(ABC):
    """Abstract base class for all tools.

    Subclasses declare ``name``, ``description`` and ``parameters`` as
    class attributes and implement ``run()``. Arguments are validated
    against the declared parameters before ``run()`` sees them.
    """

    name: str = ""
    description: str | None = None
    parameters: tuple[Parameter, ...] = ()
    annotations: ToolAnnotations | None = None

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        """Initialize the tool.

        Args:
            config: Optional tool-specific settings.
        """
        self.config: dict[str, Any] = dict(config or {})
        if not self.name:
            self.name = type(self).__name__
        self._parameters = {param.name: param for param in self.parameters}

    def input_schema(self) -> dict[str, Any]:
        """Build the JSON Schema describing the tool's arguments."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {name: param.to_schema() for name, param in self._parameters.items()},
        }
        required = [name for name, param in self._parameters.items() if param.required]
        if required:
            schema["required"] = required
        return schema

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP tools/list format."""
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }
        if self.annotations is not None:
            annotation_data = self.annotations.to_dict()
            if annotation_data:
                data["annotations"] = annotation_data
        return data

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Check arguments against the declared parameters.

        Unknown and missing arguments are reported first; the remaining
        values are then checked against the input schema with jsonschema.
        Optional arguments passed as null are treated as absent.

        Raises:
            InvalidParamsError: On an unknown, missing or mistyped argument.
        """
        for name in arguments:
            if name not in self._parameters:
                raise InvalidParamsError(f"Unknown argument: {name}")

        for name, param in self._parameters.items():
            if param.required and arguments.get(name) is None:
                raise InvalidParamsError(f"Missing required argument: {name}")

        schema = self.input_schema()
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as e:
            raise InvalidParamsError(f"Invalid schema for tool {self.name}: {e.message}") from e

        present = {name: value for name, value in arguments.items() if value is not None}
        errors = list(Draft202012Validator(schema).iter_errors(present))

        if errors:
            error = errors[0]
            name = str(error.path[0]) if error.path else "arguments"
            if error.validator == "type":
                param = self._parameters.get(name)
                expected = param.type if param is not None else error.validator_value
                raise InvalidParamsError(f"Invalid type for argument {name}: expected {expected}")
            raise InvalidParamsError(f"Invalid value for argument {name}: {error.message}")

    def execute(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        """Validate arguments and run the tool.

        Args:
            arguments: Tool arguments from tools/call.

        Returns:
            Content items produced by the tool.

        Raises:
            InvalidParamsError: If the arguments are invalid.
        """
        self.validate_arguments(arguments)
        return [item for item in self.run(arguments) if isinstance(item, dict)]

    @abstractmethod
    def run(self, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        """Run the tool on validated arguments.

        Args:
            arguments: Validated tool arguments.

        Returns:
            Content items (see ``text_content`` and friends).
        """

    def get_completion_suggestions(
        self, argument: str, value: Any, arguments: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Suggest values for a partially typed argument.

        Args:
            argument: Name of the argument being completed.
            value: Current partial value.
            arguments: Other arguments provided so far.

        Returns:
            Completion object with 'values', 'total' and 'hasMore'.
        """
        return empty_completion()

    def initialize(self) -> None:
        """Called once when the session is initialized."""

    def shutdown(self) -> None:
        """Called once when the session shuts down."""
