"""Lens MCP runtime - stdio server connections, registry and orchestration."""

from .client import ExitCallback, FrameReceived, ProcessExited, ProtocolClient
from .framing import FrameReader, iter_frames
from .orchestrator import Orchestrator
from .pending import PendingRequest, PendingRequests
from .protocol import (
    METHOD_INITIALIZE,
    METHOD_INITIALIZED,
    METHOD_TOOLS_LIST,
    Frame,
    JSONRPCBuilder,
    JSONRPCReply,
)
from .registry import ClientFactory, ConnectionRegistry
from .types import (
    RpcFailure,
    RpcResult,
    RpcSuccess,
    ServerSnapshot,
    SnapshotListener,
    ToolDescriptor,
)

__all__ = [
    # Client
    "ProtocolClient",
    "ExitCallback",
    "FrameReceived",
    "ProcessExited",
    # Framing
    "FrameReader",
    "iter_frames",
    # Pending
    "PendingRequest",
    "PendingRequests",
    # Registry
    "ConnectionRegistry",
    "ClientFactory",
    # Orchestrator
    "Orchestrator",
    # Types
    "ToolDescriptor",
    "RpcSuccess",
    "RpcFailure",
    "RpcResult",
    "ServerSnapshot",
    "SnapshotListener",
    # Protocol
    "JSONRPCBuilder",
    "JSONRPCReply",
    "Frame",
    "METHOD_INITIALIZE",
    "METHOD_INITIALIZED",
    "METHOD_TOOLS_LIST",
]
