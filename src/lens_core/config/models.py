"""Lens configuration data models."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from lens_core.logging import LogConfig
from lens_core.types import LogFormat, LogLevel, MCPTransport


@dataclass(frozen=True)
class ServerConfig:
    """Definition of one MCP server, keyed by name.

    Supplied by a config source and never mutated by the runtime.
    """

    name: str
    command: str = ""
    args: tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)  # Overlay on os.environ
    transport: MCPTransport = MCPTransport.STDIO
    disabled: bool = False
    url: str | None = None  # For http/sse entries (recognised, not started)
    env_file: str | None = None  # Recorded only; not read by the runtime

    @property
    def command_line(self) -> str:
        """Command and arguments joined for display."""
        return " ".join([self.command, *self.args]).strip()


@dataclass
class RuntimeConfig:
    """Connection runtime settings."""

    request_timeout: float = 10.0  # Seconds before a pending request fails
    restart_delay: float = 1.0  # Settling delay between stop and start
    stop_timeout: float = 5.0  # Grace period after SIGTERM before SIGKILL
    protocol_version: str = "2024-11-05"
    client_name: str = "mcp-lens"
    client_version: str = "0.1.0"
    read_chunk_size: int = 65536
    keep_connected: bool = True  # Orchestrator keeps servers running after discovery


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_context: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=dict)

    def to_log_config(self) -> LogConfig:
        """Build the logger configuration."""
        return LogConfig(
            level=self.level,
            format=self.format,
            show_context=self.show_context,
            truncate_at=self.truncate_at,
            components=dict(self.components),
        )


@dataclass
class LensConfig:
    """Root configuration."""

    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    servers: dict[str, ServerConfig] = field(default_factory=dict)
