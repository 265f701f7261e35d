"""Shared enumerations for Lens."""

from enum import Enum


class LogLevel(str, Enum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output format."""

    COLORED = "colored"
    JSON = "json"


class MCPTransport(str, Enum):
    """MCP server transport type.

    Only STDIO is driven by the runtime. HTTP and SSE are recognised so
    configuration files that declare them can be reported rather than rejected.
    """

    STDIO = "stdio"
    HTTP = "http"
    SSE = "sse"


class ConnectionState(str, Enum):
    """Lifecycle state of a single protocol client."""

    IDLE = "idle"
    STARTING = "starting"
    HANDSHAKE = "handshake"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERRORED = "errored"


class ServerStatus(str, Enum):
    """User-facing server status shown by the presentation layer."""

    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def from_state(cls, state: ConnectionState) -> "ServerStatus":
        """Collapse a connection state into a user-facing status."""
        if state == ConnectionState.READY:
            return cls.RUNNING
        if state == ConnectionState.ERRORED:
            return cls.ERROR
        if state in (ConnectionState.STOPPING, ConnectionState.STOPPED):
            return cls.STOPPED
        return cls.UNKNOWN
