"""Lens Error handling - Structured errors with context."""

from .errors import (
    DuplicateStartError,
    ErrorCategory,
    ErrorMatcher,
    ErrorTemplate,
    FrameParseError,
    HandshakeError,
    LensError,
    MatchResult,
    NotReadyError,
    ProcessExit,
    RequestTimeout,
    ServerNotFoundError,
    SpawnError,
)
from .factory import ErrorFactory, create_error, get_error_factory
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry

__all__ = [
    # Core error types
    "LensError",
    "ErrorCategory",
    "ErrorTemplate",
    "MatchResult",
    # Taxonomy
    "SpawnError",
    "HandshakeError",
    "RequestTimeout",
    "FrameParseError",
    "ProcessExit",
    "DuplicateStartError",
    "NotReadyError",
    "ServerNotFoundError",
    # Registry and factory
    "ErrorRegistry",
    "ErrorFactory",
    "ErrorMatcherChain",
    "ErrorMatcher",
    # Convenience functions
    "get_error_factory",
    "create_error",
]
