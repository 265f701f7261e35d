"""Error matchers for converting exceptions to LensErrors."""

import asyncio
from typing import Any

from .errors import ErrorMatcher, MatchResult


class TimeoutErrorMatcher(ErrorMatcher):
    """Matches timeout errors."""

    def matches(self, error: Exception | dict[str, Any]) -> bool:
        """Check if error is a timeout error."""
        if isinstance(error, dict):
            return error.get("type") == "timeout"
        return isinstance(error, (asyncio.TimeoutError, TimeoutError))

    def extract(self, error: Exception | dict[str, Any]) -> MatchResult:
        """Extract timeout error info.

        Args:
            error: Exception or error dict to extract from

        Returns:
            MatchResult with REQUEST_TIMEOUT code
        """
        context: dict[str, Any] = {}

        if isinstance(error, dict):
            context["timeout_seconds"] = error.get("timeout", "unknown")
            context["method"] = error.get("method", "unknown")
        else:
            context["timeout_seconds"] = "unknown"
            context["method"] = "unknown"

        return MatchResult(
            lens_code="REQUEST_TIMEOUT",
            context=context,
            retryable=True,
        )


class SpawnErrorMatcher(ErrorMatcher):
    """Matches OS errors raised while launching an executable."""

    _SPAWN_ERRORS = (FileNotFoundError, PermissionError, NotADirectoryError)

    def matches(self, error: Exception | dict[str, Any]) -> bool:
        """Check if error came from a failed exec."""
        if isinstance(error, dict):
            return error.get("type") == "spawn"
        return isinstance(error, self._SPAWN_ERRORS)

    def extract(self, error: Exception | dict[str, Any]) -> MatchResult:
        """Extract spawn error info."""
        if isinstance(error, dict):
            detail = error.get("message", str(error))
        else:
            detail = str(error)

        return MatchResult(lens_code="SPAWN_FAILED", context={"detail": detail})


class PipeErrorMatcher(ErrorMatcher):
    """Matches broken pipes to a server process."""

    def matches(self, error: Exception | dict[str, Any]) -> bool:
        """Check if error is a lost pipe."""
        if isinstance(error, dict):
            return error.get("type") == "exit"
        return isinstance(error, (BrokenPipeError, ConnectionResetError))

    def extract(self, error: Exception | dict[str, Any]) -> MatchResult:
        """Extract pipe error info."""
        detail = error.get("message", str(error)) if isinstance(error, dict) else str(error)
        return MatchResult(lens_code="PROCESS_EXITED", context={"detail": detail})


class RpcErrorMatcher(ErrorMatcher):
    """Matches JSON-RPC error objects ({code, message, data?})."""

    def matches(self, error: Exception | dict[str, Any]) -> bool:
        """Check if error is a JSON-RPC error object."""
        return (
            isinstance(error, dict)
            and isinstance(error.get("code"), int)
            and isinstance(error.get("message"), str)
        )

    def extract(self, error: Exception | dict[str, Any]) -> MatchResult:
        """Extract JSON-RPC error info."""
        assert isinstance(error, dict)
        context: dict[str, Any] = {
            "rpc_code": error["code"],
            "rpc_message": error["message"],
        }
        if error.get("data") is not None:
            context["detail"] = str(error["data"])
        return MatchResult(lens_code="RPC_ERROR", context=context)


class GenericErrorMatcher(ErrorMatcher):
    """Fallback matcher for any exception."""

    def matches(self, error: Exception | dict[str, Any]) -> bool:
        """Always matches."""
        return True

    def extract(self, error: Exception | dict[str, Any]) -> MatchResult:
        """Extract generic error info.

        Args:
            error: Exception or error dict to extract from

        Returns:
            MatchResult with INTERNAL_ERROR code
        """
        context: dict[str, Any] = {}

        if isinstance(error, dict):
            context["detail"] = error.get("message", str(error))
            context["error_type"] = error.get("type", "unknown")
        else:
            context["detail"] = str(error)
            context["error_type"] = type(error).__name__

        return MatchResult(
            lens_code="INTERNAL_ERROR",
            context=context,
            retryable=False,
        )


class ErrorMatcherChain:
    """Ordered chain of matchers. First match wins."""

    def __init__(self) -> None:
        """Initialize matcher chain with built-in matchers."""
        self.matchers: list[ErrorMatcher] = []
        self._load_builtin_matchers()

    def match(self, error: Exception | dict[str, Any]) -> MatchResult:
        """Find first matching matcher and extract result.

        Args:
            error: Exception or error dict to match

        Returns:
            MatchResult from first matching matcher
        """
        for matcher in self.matchers:
            if matcher.matches(error):
                return matcher.extract(error)

        # Should never reach here due to GenericErrorMatcher
        return MatchResult(
            lens_code="INTERNAL_ERROR",
            context={"detail": str(error)},
            retryable=False,
        )

    def _load_builtin_matchers(self) -> None:
        """Load built-in matchers in priority order."""
        # Order matters - more specific matchers first
        self.matchers = [
            TimeoutErrorMatcher(),
            SpawnErrorMatcher(),
            PipeErrorMatcher(),
            RpcErrorMatcher(),
            GenericErrorMatcher(),  # Fallback - must be last
        ]
