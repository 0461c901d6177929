"""Core."""

from .config import (
    GatewayConfig,
    ProviderSettings,
    clear_config,
    get_config,
    load_config_from_file,
)

__all__ = [
    "GatewayConfig",
    "ProviderSettings",
    "clear_config",
    "get_config",
    "load_config_from_file",
]
