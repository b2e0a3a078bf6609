"""Configuration types with environment variable support.

All settings can be configured via environment variables with the HOOKGUARD_ prefix.
Example: HOOKGUARD_SECRET=s3cr3t sets the shared webhook secret.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SIGNATURE_HEADER = "X-Hub-Signature-256"

LogLevel = Literal["debug", "info", "warning", "error"]
LOG_LEVELS: tuple[str, ...] = ("debug", "info", "warning", "error")


class ConfigurationError(ValueError):
    """Raised when the gateway cannot be set up from its configuration."""


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            data = tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")
    return data


def split_bind(bind: str) -> tuple[str, int]:
    """Split a ``host:port``, ``[ipv6]:port`` or bare ``port`` bind address.

    Raises:
        ValueError: If the port is not a number in 0-65535 or an IPv6 host
            is not bracketed.
    """
    host, sep, port = bind.rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"IPv6 bind address must be bracketed: {bind!r}")

    if not (port.isascii() and port.isdigit()) or int(port) > 65535:
        raise ValueError(f"Invalid port in bind address: {bind!r}")
    return (host if sep and host else "0.0.0.0"), int(port)


class GatewayConfig(BaseSettings):
    """Webhook gateway configuration.

    Only ``secret`` is required; it is validated once when the verifier is
    built, never per request.

    Example:
        config = GatewayConfig(secret="s3cr3t", upstream_url="http://localhost:9000")
    """

    model_config = SettingsConfigDict(
        env_prefix="HOOKGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: str = Field(
        default="",
        repr=False,
        description="Shared secret used to sign webhook deliveries.",
    )
    bind: str = Field(
        default="0.0.0.0:8080",
        description="Listen address as host:port, [ipv6]:port or a bare port.",
    )
    upstream_url: str | None = Field(
        default=None,
        description="Upstream URL that receives verified requests. None acknowledges with 202.",
    )
    path: str = Field(
        default="/{path:.*}",
        description="Route pattern protected by signature verification.",
    )
    signature_header: str = Field(
        default=DEFAULT_SIGNATURE_HEADER,
        description="Request header carrying the sha256=<hex> signature.",
    )
    max_body_size: int = Field(
        default=25 * 1024 * 1024,
        gt=0,
        description="Maximum accepted request body (bytes). Larger bodies are rejected.",
    )
    upstream_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for forwarding to the upstream.",
    )
    log_level: LogLevel = Field(
        default="info",
        description="Log level (debug, info, warning, error).",
    )

    @classmethod
    def from_file(cls, path: str | Path, **overrides: Any) -> GatewayConfig:
        """Build a config from a YAML/TOML file; non-None overrides win."""
        values = load_config_from_file(path)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @field_validator("bind")
    @classmethod
    def _check_bind(cls, value: str) -> str:
        split_bind(value)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _lower_log_level(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    def parse_bind(self) -> tuple[str, int]:
        """Parse bind address into host and port."""
        return split_bind(self.bind)


_config: GatewayConfig | None = None


def get_config() -> GatewayConfig:
    """Get the global configuration instance.

    The instance is created once from the environment and cached for the
    lifetime of the process. Call clear_config() first to reload it.
    """
    global _config
    if _config is None:
        _config = GatewayConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration."""
    global _config
    _config = None
