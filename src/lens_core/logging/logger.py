"""Lens Logger - Hierarchical colored logging for server connections."""

import json
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TextIO

from lens_core.logging.colors import (
    CYAN,
    GREEN,
    LIGHT_BLUE,
    MAGENTA,
    ORANGE,
    RED,
    RESET,
    YELLOW,
)
from lens_core.types import LogFormat, LogLevel


@dataclass
class LogConfig:
    """Logger configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_context: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=dict)
    output: TextIO = field(default=sys.stderr)

    def __post_init__(self) -> None:
        """Initialize default components if not provided."""
        if not self.components:
            self.components = {
                "server": True,
                "registry": True,
                "orchestrator": True,
                "config": True,
            }


class LensLogger:
    """Main logger facade. Creates component-specific loggers."""

    def __init__(self, config: LogConfig | None = None):
        """Initialize logger with configuration.

        Args:
            config: Logger configuration (defaults to LogConfig())
        """
        self.config = config or LogConfig()
        self._level_order = {
            LogLevel.DEBUG: 0,
            LogLevel.INFO: 1,
            LogLevel.WARN: 2,
            LogLevel.ERROR: 3,
        }

    def server(self, name: str) -> "ServerLogger":
        """Get a logger scoped to one server connection.

        Args:
            name: Server name

        Returns:
            ServerLogger instance
        """
        return ServerLogger(self, name)

    def configure(self, config: LogConfig) -> None:
        """Update configuration (for hot-reload).

        Args:
            config: New logger configuration
        """
        self.config = config

    def _should_log(self, level: LogLevel) -> bool:
        """Check if a log level should be logged."""
        return self._level_order.get(level, 0) >= self._level_order.get(self.config.level, 1)

    def _log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method.

        Args:
            level: Log level
            component: Component name (server, registry, orchestrator, config)
            message: Log message
            context: Additional context data
        """
        if not self._should_log(level):
            return

        if not self.config.components.get(component, True):
            return

        if self.config.format == LogFormat.JSON:
            self._log_json(level, component, message, context)
        else:
            self._log_colored(level, component, message, context)

    def _log_json(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Log in JSON format."""
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level.value,
            "component": component,
            "message": message,
        }
        if context:
            log_entry.update(context)

        print(json.dumps(log_entry, default=str), file=self.config.output)

    def _log_colored(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Log in colored format."""
        level_colors = {
            LogLevel.DEBUG: LIGHT_BLUE,
            LogLevel.INFO: CYAN,
            LogLevel.WARN: YELLOW,
            LogLevel.ERROR: RED,
        }

        color = level_colors.get(level, RESET)
        component_color = {
            "server": GREEN,
            "registry": MAGENTA,
            "orchestrator": CYAN,
            "config": ORANGE,
        }.get(component, RESET)

        # Format: [COMPONENT] message
        output = f"{component_color}[{component.upper()}]{RESET} {color}{message}{RESET}"

        if context and self.config.show_context:
            context_str = str(context)
            if len(context_str) > self.config.truncate_at:
                context_str = context_str[: self.config.truncate_at] + "..."
            output += f" {LIGHT_BLUE}{context_str}{RESET}"

        print(output, file=self.config.output)


class ServerLogger:
    """Logger for events of a single server connection."""

    def __init__(self, parent: LensLogger, server_name: str):
        """Initialize server logger.

        Args:
            parent: Parent LensLogger instance
            server_name: Server name
        """
        self.parent = parent
        self.server_name = server_name

    def _emit(self, level: LogLevel, event: str, message: str, **extra: Any) -> None:
        context: dict[str, Any] = {"server": self.server_name, "event": event}
        context.update({k: v for k, v in extra.items() if v is not None})
        self.parent._log(level, "server", f"[{self.server_name}] {message}", context)

    def spawning(self, command: str, args: list[str] | tuple[str, ...]) -> None:
        """Log process launch."""
        line = " ".join([command, *args])
        self._emit(LogLevel.INFO, "spawning", f"Starting server: {line}")

    def spawned(self, pid: int | None) -> None:
        """Log successful process launch."""
        self._emit(LogLevel.DEBUG, "spawned", f"Process started (pid={pid})", pid=pid)

    def spawn_failed(self, error: Exception) -> None:
        """Log a process that could not be launched."""
        self._emit(
            LogLevel.ERROR,
            "spawn_failed",
            f"Failed to start: {error}",
            error_type=type(error).__name__,
        )

    def handshake_completed(self, server_info: str, protocol_version: str) -> None:
        """Log a completed initialize exchange."""
        self._emit(
            LogLevel.INFO,
            "handshake_completed",
            f"Ready ({server_info}, protocol {protocol_version}) ✓",
            protocol_version=protocol_version,
        )

    def handshake_failed(self, error: Exception) -> None:
        """Log a failed initialize exchange."""
        self._emit(
            LogLevel.ERROR,
            "handshake_failed",
            f"Handshake failed: {error}",
            error_type=type(error).__name__,
        )

    def stderr(self, line: str) -> None:
        """Log one line the server wrote to stderr."""
        self._emit(LogLevel.DEBUG, "stderr", f"stderr: {line}")

    def frame_discarded(self, line: str, reason: str) -> None:
        """Log a malformed line dropped by the frame reader."""
        truncate_at = self.parent.config.truncate_at
        preview = line if len(line) <= truncate_at else line[:truncate_at] + "..."
        self._emit(
            LogLevel.WARN,
            "frame_discarded",
            f"Failed to parse message: {preview}",
            reason=reason,
        )

    def unmatched(self, description: str) -> None:
        """Log a frame that did not settle any pending request."""
        self._emit(LogLevel.DEBUG, "unmatched", f"Ignored {description}")

    def request_timeout(self, method: str, request_id: int, timeout: float) -> None:
        """Log an expired request."""
        self._emit(
            LogLevel.WARN,
            "request_timeout",
            f"Request '{method}' (id={request_id}) timed out after {timeout}s",
            request_id=request_id,
        )

    def exited(self, returncode: int | None, pending: int) -> None:
        """Log an unexpected process exit."""
        self._emit(
            LogLevel.WARN,
            "exited",
            f"Process exited with code {returncode} ({pending} pending requests failed)",
            returncode=returncode,
        )

    def stopped(self, pending: int) -> None:
        """Log an explicit stop."""
        self._emit(
            LogLevel.INFO,
            "stopped",
            f"Stopped ({pending} pending requests cancelled)",
        )

    def warn(self, message: str) -> None:
        """Log a free-form warning for this server."""
        self._emit(LogLevel.WARN, "warning", message)
