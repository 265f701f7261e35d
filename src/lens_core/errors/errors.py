"""Lens error types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error source categories."""

    PROCESS = "PROCESS"
    PROTOCOL = "PROTOCOL"
    REQUEST = "REQUEST"
    REGISTRY = "REGISTRY"
    CONFIG = "CONFIG"
    SYSTEM = "SYSTEM"


@dataclass
class LensError(Exception):
    """Structured error with context. Base exception for all Lens errors."""

    # Identity
    code: str  # e.g., "SPAWN_FAILED"
    category: ErrorCategory

    # Messages
    message: str  # Human-readable summary
    detail: str | None = None  # Extended explanation
    suggestion: str | None = None  # Actionable fix

    # Context
    retryable: bool = False  # Is retry potentially useful?
    server_name: str | None = None  # Which server failed
    method: str | None = None  # Which JSON-RPC method failed
    request_id: int | None = None  # Which request failed

    # Error chain (max depth 3)
    cause: "LensError | None" = None

    # Metadata
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Set Exception message."""
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the presentation layer.

        Returns:
            Dictionary representation of the error
        """
        return {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "retryable": self.retryable,
            "server_name": self.server_name,
            "method": self.method,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "cause": self.cause.to_dict() if self.cause else None,
        }

    def with_context(
        self,
        server_name: str | None = None,
        method: str | None = None,
        request_id: int | None = None,
    ) -> "LensError":
        """Return copy with additional context.

        The copy keeps the concrete error class.

        Args:
            server_name: Optional server name
            method: Optional JSON-RPC method
            request_id: Optional request id

        Returns:
            New error instance with updated context
        """
        return type(self)(
            code=self.code,
            category=self.category,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
            retryable=self.retryable,
            server_name=server_name or self.server_name,
            method=method or self.method,
            request_id=request_id if request_id is not None else self.request_id,
            cause=self.cause,
            timestamp=self.timestamp,
        )


class SpawnError(LensError):
    """Executable missing or not permitted; no process exists."""


class HandshakeError(LensError):
    """Process started but the initialize exchange failed."""


class RequestTimeout(LensError):
    """No matching response arrived within the request window."""


class FrameParseError(LensError):
    """A line from the server is not a JSON-RPC envelope."""


class ProcessExit(LensError):
    """Server process exited or was stopped while work was outstanding."""


class DuplicateStartError(LensError):
    """Start requested for a server that already has a live connection."""


class NotReadyError(LensError):
    """Call issued against a connection that has not completed its handshake."""


class ServerNotFoundError(LensError):
    """No configuration or connection exists under the requested name."""


@dataclass
class ErrorTemplate:
    """Template for creating errors."""

    code: str
    category: ErrorCategory
    message_template: str  # "Server '{server_name}' failed to start"
    detail_template: str | None = None
    suggestion_template: str | None = None
    default_retryable: bool = False
    error_class: type[LensError] = LensError


@dataclass
class MatchResult:
    """Result of matching an exception."""

    lens_code: str
    context: dict[str, Any]
    retryable: bool | None = None  # None = use template default


class ErrorMatcher(ABC):
    """Base class for exception matchers."""

    @abstractmethod
    def matches(self, error: Exception | dict[str, Any]) -> bool:
        """Check if this matcher handles the error.

        Args:
            error: Exception or error dict to check

        Returns:
            True if this matcher can handle the error
        """

    @abstractmethod
    def extract(self, error: Exception | dict[str, Any]) -> MatchResult:
        """Extract Lens error info from the exception.

        Args:
            error: Exception or error dict to extract from

        Returns:
            MatchResult with error code and context
        """
