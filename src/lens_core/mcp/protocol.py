"""JSON-RPC protocol helpers for MCP communication over stdio."""

import json
from typing import Any, Literal

from mcp.types import (
    ClientCapabilities,
    Implementation,
    InitializeRequestParams,
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCRequest,
    RequestId,
    RootsCapability,
    SamplingCapability,
)
from pydantic import BaseModel, ConfigDict

from lens_core.config.models import RuntimeConfig

JSONRPC_VERSION = "2.0"

# MCP methods used by the client
METHOD_INITIALIZE = "initialize"
METHOD_INITIALIZED = "notifications/initialized"
METHOD_TOOLS_LIST = "tools/list"


class JSONRPCReply(BaseModel):
    """Success response whose ``result`` may be any JSON value.

    A response carrying an id but neither ``result`` nor ``error`` reads as
    a null result.
    """

    jsonrpc: Literal["2.0"]
    id: RequestId
    result: Any = None

    model_config = ConfigDict(extra="allow")


# One validated line read from a server
Frame = JSONRPCRequest | JSONRPCNotification | JSONRPCReply | JSONRPCError


class JSONRPCBuilder:
    """JSON-RPC 2.0 message builder and line codec."""

    @staticmethod
    def request(method: str, params: dict[str, Any] | None = None, id: int = 1) -> dict[str, Any]:
        """Build a JSON-RPC request.

        Args:
            method: Method name (e.g., "initialize", "tools/list")
            params: Optional parameters
            id: Request ID

        Returns:
            JSON-RPC request dict
        """
        msg: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "method": method,
        }
        if params is not None:
            msg["params"] = params
        return msg

    @staticmethod
    def notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build a JSON-RPC notification (no response expected).

        Args:
            method: Method name
            params: Optional parameters

        Returns:
            JSON-RPC notification dict
        """
        msg: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
        }
        if params is not None:
            msg["params"] = params
        return msg

    @staticmethod
    def success_response(id: int, result: Any) -> dict[str, Any]:
        """Build a JSON-RPC success response."""
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "result": result,
        }

    @staticmethod
    def error_response(id: int, code: int, message: str, data: Any = None) -> dict[str, Any]:
        """Build a JSON-RPC error response.

        Args:
            id: Request ID
            code: Error code
            message: Error message
            data: Optional error data

        Returns:
            JSON-RPC error response dict
        """
        error: dict[str, Any] = {
            "code": code,
            "message": message,
        }
        if data is not None:
            error["data"] = data

        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "error": error,
        }

    @staticmethod
    def encode(message: dict[str, Any] | BaseModel) -> bytes:
        """Serialise one message as a newline-terminated UTF-8 line.

        json.dumps escapes embedded newlines, so the output is always a
        single line.
        """
        if isinstance(message, BaseModel):
            message = message.model_dump(mode="json", by_alias=True, exclude_none=True)
        line = json.dumps(message, ensure_ascii=False, separators=(",", ":"))
        return (line + "\n").encode("utf-8")

    @staticmethod
    def parse(line: str | bytes) -> Frame:
        """Validate one line as a JSON-RPC envelope.

        The envelope is classified by its members: ``method`` makes a request
        (with ``id``) or a notification, ``error`` an error response, and a
        bare ``id`` a success response. ``result`` is not interpreted here.

        Raises:
            ValueError: If the line is not JSON or not an envelope
                (pydantic.ValidationError for malformed members)
        """
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("message is not a JSON object")
        if data.get("jsonrpc") != JSONRPC_VERSION:
            raise ValueError("jsonrpc member must be '2.0'")
        if isinstance(data.get("id"), bool):
            raise ValueError("id must be a string or an integer")

        model: type[Frame]
        if "method" in data:
            model = JSONRPCRequest if "id" in data else JSONRPCNotification
        elif "error" in data:
            model = JSONRPCError
        elif "id" in data:
            model = JSONRPCReply
        else:
            raise ValueError("message has neither method nor id")
        return model.model_validate(data)

    @staticmethod
    def initialize_params(settings: RuntimeConfig) -> dict[str, Any]:
        """Build ``initialize`` params announcing roots and sampling support."""
        params = InitializeRequestParams(
            protocolVersion=settings.protocol_version,
            capabilities=ClientCapabilities(
                roots=RootsCapability(listChanged=True),
                sampling=SamplingCapability(),
            ),
            clientInfo=Implementation(
                name=settings.client_name,
                version=settings.client_version,
            ),
        )
        return params.model_dump(mode="json", by_alias=True, exclude_none=True)
