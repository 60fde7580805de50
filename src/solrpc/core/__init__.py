"""Core services for solrpc."""

from .config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_DIR,
    ConfigManager,
    ConfigurationError,
    SolRPCConfig,
    configure,
    get_config,
    reset_config,
    resolve_setting,
)
from .logs import LogBuffer, LogEntry

__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_CONFIG_DIR",
    "ConfigManager",
    "ConfigurationError",
    "SolRPCConfig",
    "configure",
    "get_config",
    "reset_config",
    "resolve_setting",
    "LogBuffer",
    "LogEntry",
]
