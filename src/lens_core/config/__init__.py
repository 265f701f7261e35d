"""Lens Configuration - Config loading and server sources."""

from .loader import (
    ConfigLoader,
    get_config_loader,
    load_config,
    parse_config_text,
    resolve_env_vars,
    server_from_mapping,
    servers_from_mapping,
    strip_json_comments,
)
from .models import LensConfig, LoggingConfig, RuntimeConfig, ServerConfig
from .sources import ChainedConfigSource, ConfigSource, FileConfigSource, StaticConfigSource

__all__ = [
    # Config models
    "LensConfig",
    "RuntimeConfig",
    "LoggingConfig",
    "ServerConfig",
    # Loader
    "ConfigLoader",
    "get_config_loader",
    "load_config",
    # Sources
    "ConfigSource",
    "StaticConfigSource",
    "FileConfigSource",
    "ChainedConfigSource",
    # Utilities
    "resolve_env_vars",
    "strip_json_comments",
    "parse_config_text",
    "server_from_mapping",
    "servers_from_mapping",
]
