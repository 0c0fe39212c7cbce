"""MCP (Model Context Protocol) implementation with JSON-RPC 2.0."""

from mcpforge.mcp.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    RESOURCE_NOT_FOUND,
    ErrorKind,
    Failure,
    Outcome,
    ProtocolError,
    Success,
)
from mcpforge.mcp.models import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    TextContent,
    Tool,
    ToolCallResult,
)
from mcpforge.mcp.notifications import NotificationDispatcher, NotificationSender
from mcpforge.mcp.registry import CapabilityKind, CapabilityRegistry
from mcpforge.mcp.router import ProtocolRouter
from mcpforge.mcp.schema import ParamSpec
from mcpforge.mcp.server import MCPServer, get_server, reset_server
from mcpforge.mcp.subscriptions import SubscriptionManager

__all__ = [
    "CapabilityKind",
    "CapabilityRegistry",
    "ErrorKind",
    "Failure",
    "JsonRpcError",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MCPServer",
    "NotificationDispatcher",
    "NotificationSender",
    "Outcome",
    "ParamSpec",
    "ProtocolError",
    "ProtocolRouter",
    "Success",
    "SubscriptionManager",
    "TextContent",
    "Tool",
    "ToolCallResult",
    "get_server",
    "reset_server",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "RESOURCE_NOT_FOUND",
]
