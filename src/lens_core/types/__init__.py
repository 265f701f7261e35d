"""Shared types for Lens.

Import from here rather than submodules:
    from lens_core.types import ConnectionState, LogLevel, ServerStatus
"""

from .enums import (
    ConnectionState,
    LogFormat,
    LogLevel,
    MCPTransport,
    ServerStatus,
)
from .validation import ValidationIssue, ValidationResult

__all__ = [
    # Enums
    "LogLevel",
    "LogFormat",
    "MCPTransport",
    "ConnectionState",
    "ServerStatus",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
