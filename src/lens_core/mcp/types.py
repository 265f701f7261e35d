"""MCP connection types for Lens."""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from lens_core.errors import LensError, create_error
from lens_core.types import MCPTransport, ServerStatus


@dataclass
class ToolDescriptor:
    """Tool advertised by an MCP server in its ``tools/list`` result."""

    name: str
    description: str | None = None
    input_schema: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "ToolDescriptor | None":
        """Build from one ``result.tools`` entry.

        Returns:
            ToolDescriptor, or None when the entry has no string name
        """
        if not isinstance(data, dict):
            return None
        name = data.get("name")
        if not isinstance(name, str) or not name:
            return None

        description = data.get("description")
        input_schema = data.get("inputSchema")
        return cls(
            name=name,
            description=description if isinstance(description, str) else None,
            input_schema=input_schema if isinstance(input_schema, dict) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            result["description"] = self.description
        if self.input_schema is not None:
            result["inputSchema"] = self.input_schema
        return result


@dataclass(frozen=True)
class RpcSuccess:
    """Response carrying a ``result``, which may be any JSON value."""

    id: int
    result: Any


@dataclass(frozen=True)
class RpcFailure:
    """Response carrying an ``error`` object."""

    id: int
    code: int
    message: str
    data: Any = None

    def to_error(self, server_name: str | None = None, method: str | None = None) -> LensError:
        """Convert into an RPC_ERROR LensError."""
        return create_error(
            "RPC_ERROR",
            rpc_code=self.code,
            rpc_message=self.message,
            server_name=server_name,
            method=method,
            request_id=self.id,
        )


RpcResult = RpcSuccess | RpcFailure


@dataclass
class ServerSnapshot:
    """Presentation-facing view of one configured server."""

    name: str
    status: ServerStatus = ServerStatus.UNKNOWN
    tools: list[ToolDescriptor] = field(default_factory=list)
    error: str | None = None
    transport: MCPTransport = MCPTransport.STDIO
    command: str = ""
    disabled: bool = False

    @property
    def tool_count(self) -> int:
        return len(self.tools)

    def copy(self) -> "ServerSnapshot":
        """Copy that shares no mutable state with this snapshot."""
        return replace(self, tools=list(self.tools))

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the presentation layer."""
        return {
            "name": self.name,
            "status": self.status.value,
            "toolCount": self.tool_count,
            "tools": [tool.to_dict() for tool in self.tools],
            "error": self.error,
            "transport": self.transport.value,
            "command": self.command,
            "disabled": self.disabled,
        }


# Receives the full name -> snapshot map after every change
SnapshotListener = Callable[[dict[str, ServerSnapshot]], None]
