"""Lens Logging - Hierarchical colored logging for server connections."""

from .colors import (
    CYAN,
    GREEN,
    LIGHT_BLUE,
    MAGENTA,
    ORANGE,
    RED,
    RESET,
    YELLOW,
)
from .logger import (
    LensLogger,
    LogConfig,
    ServerLogger,
)

__all__ = [
    # Logger classes
    "LensLogger",
    "ServerLogger",
    "LogConfig",
    # Colors
    "RESET",
    "GREEN",
    "RED",
    "YELLOW",
    "ORANGE",
    "LIGHT_BLUE",
    "CYAN",
    "MAGENTA",
]
