"""Error factory for creating LensErrors from any exception type."""

from typing import Any

from .errors import LensError
from .matchers import ErrorMatcherChain
from .registry import ErrorRegistry


class ErrorFactory:
    """Creates LensErrors from any exception type."""

    def __init__(
        self,
        registry: ErrorRegistry | None = None,
        matcher_chain: ErrorMatcherChain | None = None,
    ):
        """Initialize error factory.

        Args:
            registry: Error registry (defaults to new ErrorRegistry())
            matcher_chain: Matcher chain (defaults to new ErrorMatcherChain())
        """
        self.registry = registry or ErrorRegistry()
        self.matcher_chain = matcher_chain or ErrorMatcherChain()
        self._max_cause_depth = 3

    def from_exception(
        self,
        error: BaseException | dict[str, Any],
        server_name: str | None = None,
        method: str | None = None,
        request_id: int | None = None,
    ) -> LensError:
        """Convert any exception (or JSON-RPC error object) to LensError.

        Args:
            error: Exception or error dict to convert
            server_name: Optional server name
            method: Optional JSON-RPC method
            request_id: Optional request id

        Returns:
            LensError instance
        """
        # If already a LensError, just add context
        if isinstance(error, LensError):
            return error.with_context(
                server_name=server_name,
                method=method,
                request_id=request_id,
            )

        match_result = self.matcher_chain.match(error)  # type: ignore[arg-type]

        context = match_result.context.copy()
        if server_name:
            context["server_name"] = server_name
        if method:
            context["method"] = method
        if request_id is not None:
            context["request_id"] = request_id

        lens_error = self.registry.create(
            code=match_result.lens_code,
            context=context,
        )

        # Override retryable if specified in match result
        if match_result.retryable is not None:
            lens_error.retryable = match_result.retryable

        return lens_error

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
        **kwargs: Any,
    ) -> LensError:
        """Create LensError directly from code.

        Args:
            code: Error code
            context: Context variables for template interpolation
            cause: Optional underlying error, converted to LensError if needed
            **kwargs: Additional context variables

        Returns:
            LensError instance
        """
        merged_context = dict(context or {})
        merged_context.update(kwargs)

        lens_cause = None
        if cause is not None:
            lens_cause = self._truncate_chain(self.from_exception(cause))

        return self.registry.create(code=code, context=merged_context, cause=lens_cause)

    def _truncate_chain(self, error: LensError) -> LensError:
        """Drop causes deeper than the configured depth."""
        node = error
        depth = 1
        while node.cause is not None:
            if depth >= self._max_cause_depth:
                node.cause = None
                break
            node = node.cause
            depth += 1
        return error


# Convenience singleton
_default_factory: ErrorFactory | None = None


def get_error_factory() -> ErrorFactory:
    """Get default error factory singleton.

    Returns:
        Default ErrorFactory instance
    """
    global _default_factory  # noqa: PLW0603
    if _default_factory is None:
        _default_factory = ErrorFactory()
    return _default_factory


def create_error(code: str, cause: BaseException | None = None, **context: Any) -> LensError:
    """Convenience function to create error.

    Args:
        code: Error code
        cause: Optional underlying error
        **context: Context variables for template interpolation

    Returns:
        LensError instance
    """
    return get_error_factory().create(code, context, cause=cause)
