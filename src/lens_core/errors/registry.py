"""Error registry for creating errors from templates."""

from typing import Any

from .errors import (
    DuplicateStartError,
    ErrorCategory,
    ErrorTemplate,
    FrameParseError,
    HandshakeError,
    LensError,
    NotReadyError,
    ProcessExit,
    RequestTimeout,
    ServerNotFoundError,
    SpawnError,
)


class ErrorRegistry:
    """Registry of error templates. Creates errors from templates + context."""

    def __init__(self) -> None:
        """Initialize error registry with built-in templates."""
        self._templates: dict[str, ErrorTemplate] = {}
        self._load_builtin_templates()

    def get_template(self, code: str) -> ErrorTemplate | None:
        """Get template by error code.

        Args:
            code: Error code to look up

        Returns:
            ErrorTemplate if found, None otherwise
        """
        return self._templates.get(code)

    def list_codes(self) -> list[str]:
        """List all registered error codes."""
        return list(self._templates.keys())

    def register(self, template: ErrorTemplate) -> None:
        """Register or replace a template."""
        self._templates[template.code] = template

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: LensError | None = None,
    ) -> LensError:
        """Create error instance from template + context.

        A ``detail`` entry in the context replaces the template detail.

        Args:
            code: Error code
            context: Context variables for template interpolation
            cause: Optional cause error

        Returns:
            Instance of the template's error class

        Raises:
            ValueError: If error code not found
        """
        template = self.get_template(code)
        if not template:
            msg = f"Unknown error code: {code}"
            raise ValueError(msg)

        context = context or {}

        message = self._interpolate(template.message_template, context)
        detail = context.get("detail") or self._interpolate(template.detail_template, context)
        suggestion = self._interpolate(template.suggestion_template, context)

        if message is None:
            message = f"Error {code}"

        return template.error_class(
            code=template.code,
            category=template.category,
            message=message,
            detail=detail,
            suggestion=suggestion,
            retryable=template.default_retryable,
            server_name=context.get("server_name"),
            method=context.get("method"),
            request_id=context.get("request_id"),
            cause=cause,
        )

    def _interpolate(
        self,
        template: str | None,
        context: dict[str, Any],
    ) -> str | None:
        """Safe string interpolation.

        Args:
            template: Template string with {var} placeholders
            context: Context variables

        Returns:
            Interpolated string or None if template is None
        """
        if template is None:
            return None

        try:
            return template.format(**context)
        except KeyError:
            # Missing context variable - return template as-is
            return template

    def _load_builtin_templates(self) -> None:
        """Load hardcoded built-in templates."""
        # PROCESS Errors
        self._templates["SPAWN_FAILED"] = ErrorTemplate(
            code="SPAWN_FAILED",
            category=ErrorCategory.PROCESS,
            message_template="Failed to spawn server '{server_name}'",
            detail_template="The server executable could not be started",
            suggestion_template="Check that the command exists and is executable",
            default_retryable=False,
            error_class=SpawnError,
        )

        self._templates["PROCESS_EXITED"] = ErrorTemplate(
            code="PROCESS_EXITED",
            category=ErrorCategory.PROCESS,
            message_template="Server '{server_name}' is no longer running",
            detail_template="The server process exited before the request completed",
            suggestion_template="Check the server's stderr output and restart it",
            default_retryable=True,
            error_class=ProcessExit,
        )

        # PROTOCOL Errors
        self._templates["HANDSHAKE_FAILED"] = ErrorTemplate(
            code="HANDSHAKE_FAILED",
            category=ErrorCategory.PROTOCOL,
            message_template="Handshake with server '{server_name}' failed",
            detail_template="The server did not complete the initialize exchange",
            suggestion_template="Check that the command starts an MCP server speaking stdio",
            default_retryable=True,
            error_class=HandshakeError,
        )

        self._templates["FRAME_INVALID"] = ErrorTemplate(
            code="FRAME_INVALID",
            category=ErrorCategory.PROTOCOL,
            message_template="Discarded malformed message from '{server_name}'",
            detail_template="The line is not a valid JSON-RPC 2.0 message",
            suggestion_template="Servers must write only protocol messages to stdout",
            default_retryable=False,
            error_class=FrameParseError,
        )

        # REQUEST Errors
        self._templates["REQUEST_TIMEOUT"] = ErrorTemplate(
            code="REQUEST_TIMEOUT",
            category=ErrorCategory.REQUEST,
            message_template="Request '{method}' timed out after {timeout_seconds}s",
            detail_template="No response with a matching id arrived in time",
            suggestion_template="Increase the request timeout or check if the server is stuck",
            default_retryable=True,
            error_class=RequestTimeout,
        )

        self._templates["CLIENT_NOT_READY"] = ErrorTemplate(
            code="CLIENT_NOT_READY",
            category=ErrorCategory.REQUEST,
            message_template="Server '{server_name}' is not ready (state: {state})",
            detail_template="Requests are only accepted after the handshake completes",
            suggestion_template="Start the server and wait for it to become ready",
            default_retryable=True,
            error_class=NotReadyError,
        )

        self._templates["RPC_ERROR"] = ErrorTemplate(
            code="RPC_ERROR",
            category=ErrorCategory.REQUEST,
            message_template="Server returned error {rpc_code}: {rpc_message}",
            detail_template="The server answered the request with a JSON-RPC error",
            suggestion_template="Check the request parameters and the server logs",
            default_retryable=False,
        )

        # REGISTRY Errors
        self._templates["DUPLICATE_START"] = ErrorTemplate(
            code="DUPLICATE_START",
            category=ErrorCategory.REGISTRY,
            message_template="Server '{server_name}' is already running",
            detail_template="A live connection already exists for this server",
            suggestion_template="Stop or restart the server instead",
            default_retryable=False,
            error_class=DuplicateStartError,
        )

        self._templates["CLIENT_STATE_INVALID"] = ErrorTemplate(
            code="CLIENT_STATE_INVALID",
            category=ErrorCategory.REGISTRY,
            message_template="Client for '{server_name}' cannot start from state {state}",
            detail_template="A protocol client can only be started once",
            suggestion_template="Create a fresh client to start the server again",
            default_retryable=False,
        )

        self._templates["SERVER_NOT_FOUND"] = ErrorTemplate(
            code="SERVER_NOT_FOUND",
            category=ErrorCategory.REGISTRY,
            message_template="Server '{server_name}' not found",
            detail_template="No configuration or connection exists under this name",
            suggestion_template="Refresh the server list and check the configuration",
            default_retryable=False,
            error_class=ServerNotFoundError,
        )

        # CONFIG Errors
        self._templates["TRANSPORT_UNSUPPORTED"] = ErrorTemplate(
            code="TRANSPORT_UNSUPPORTED",
            category=ErrorCategory.CONFIG,
            message_template="Transport '{transport}' is not supported",
            detail_template="Only stdio servers can be started",
            suggestion_template="Use a stdio command for this server",
            default_retryable=False,
        )

        self._templates["CONFIG_INVALID"] = ErrorTemplate(
            code="CONFIG_INVALID",
            category=ErrorCategory.CONFIG,
            message_template="Invalid configuration",
            detail_template="The Lens configuration is invalid",
            suggestion_template="Check the configuration file and fix errors",
            default_retryable=False,
        )

        # SYSTEM Errors
        self._templates["INTERNAL_ERROR"] = ErrorTemplate(
            code="INTERNAL_ERROR",
            category=ErrorCategory.SYSTEM,
            message_template="Internal Lens error",
            detail_template="An unexpected error occurred in the connection runtime",
            suggestion_template="Check the logs and report this issue",
            default_retryable=False,
        )
