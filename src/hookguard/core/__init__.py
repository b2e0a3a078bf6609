"""Core configuration for the hookguard gateway."""

from hookguard.core.config import (
    ConfigurationError,
    GatewayConfig,
    clear_config,
    get_config,
    load_config_from_file,
    split_bind,
)

__all__ = [
    "ConfigurationError",
    "GatewayConfig",
    "clear_config",
    "get_config",
    "load_config_from_file",
    "split_bind",
]
