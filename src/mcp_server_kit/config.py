"""Server configuration loader.

This module handles loading server settings from YAML configuration
files. Values may reference environment variables with ``${VAR}``.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from mcp_server_kit.protocol.transport import DEFAULT_MAX_MESSAGE_SIZE

TRANSPORTS = ("stdio", "http")

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

DEFAULT_INSTRUCTIONS = (
    "This server implements the Model Context Protocol (MCP) and provides "
    "the following capabilities:"
)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def expand_env_vars(value: str) -> str:
    """Expand environment variables in a string.

    Supports ${VAR_NAME} syntax. Unknown variables are left unchanged.

    Args:
        value: String potentially containing environment variable references.

    Returns:
        String with known environment variables expanded.
    """
    pattern = re.compile(r"\$\{([^}]+)\}")

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if var_name == "HOME":
            return os.path.expanduser("~")
        return match.group(0)

    return pattern.sub(replacer, value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    expanded = expand_env_vars(str(value))
    return expanded or None


@dataclass
class ServerConfig:
    """Server configuration.

    Loaded from config.yaml; every field has a default so an empty
    document yields a working stdio server.
    """

    name: str = "mcp-server-kit"
    version: str = "1.0.0"
    instructions: str = DEFAULT_INSTRUCTIONS

    # Transport settings
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = 8080
    http_path: str = "/mcp"
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE

    # Logging settings
    log_level: str = "info"

    # Authorization (shared secret checked against MCP_AUTHORIZATION_TOKEN)
    auth_token: str | None = None

    # Built-in tools
    tools_root: str = "."
    enable_web_tools: bool = False

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> ServerConfig:
        """Create a ServerConfig from a configuration dictionary.

        Args:
            config: Dictionary parsed from YAML configuration.

        Returns:
            ServerConfig instance with all settings populated.

        Raises:
            ConfigError: If a value is invalid.
        """
        server = config.get("server") or {}
        transport = config.get("transport") or {}
        logging_section = config.get("logging") or {}
        auth = config.get("authorization") or {}
        tools = config.get("tools") or {}

        for section_name, section in (
            ("server", server),
            ("transport", transport),
            ("logging", logging_section),
            ("authorization", auth),
            ("tools", tools),
        ):
            if not isinstance(section, dict):
                raise ConfigError(f"'{section_name}' must be a mapping")

        defaults = cls()
        result = cls(
            name=str(server.get("name", defaults.name)),
            version=str(server.get("version", defaults.version)),
            instructions=str(server.get("instructions", defaults.instructions)),
            transport=str(transport.get("type", defaults.transport)).lower(),
            host=str(transport.get("host", defaults.host)),
            port=transport.get("port", defaults.port),
            http_path=str(transport.get("path", defaults.http_path)),
            max_message_size=transport.get("max_message_size", defaults.max_message_size),
            log_level=str(logging_section.get("level", defaults.log_level)).lower(),
            auth_token=_optional_str(auth.get("token")),
            tools_root=expand_env_vars(str(tools.get("root", defaults.tools_root))),
            enable_web_tools=bool(tools.get("enable_web_tools", defaults.enable_web_tools)),
        )
        result.validate()
        return result

    def validate(self) -> None:
        """Check the configuration for invalid values.

        Raises:
            ConfigError: If a value is out of range or unknown.
        """
        if self.transport not in TRANSPORTS:
            raise ConfigError(
                f"Unknown transport '{self.transport}', expected one of: {', '.join(TRANSPORTS)}"
            )
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                f"Unknown log level '{self.log_level}', expected one of: {', '.join(LOG_LEVELS)}"
            )
        if not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}")
        if not isinstance(self.max_message_size, int) or self.max_message_size <= 0:
            raise ConfigError("max_message_size must be a positive integer")
        if not self.http_path.startswith("/"):
            raise ConfigError("transport path must start with '/'")


def load_config(path: Path) -> ServerConfig:
    """Load server configuration from a YAML file.

    Args:
        path: Path to the configuration YAML file.

    Returns:
        ServerConfig instance.

    Raises:
        ConfigError: If the file cannot be found, parsed, or validated.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config YAML: {e}") from e

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise ConfigError("Config must be a YAML mapping")

    return ServerConfig.from_dict(config)
