"""MCP client connections - transports, pooling and the connection registry."""

from .health import HealthMonitor
from .pool import ConnectionPool, PooledConnection
from .protocol import JSONRPCMessage, RequestIdGenerator
from .registry import ConnectionRegistry
from .transports import (
    HTTPTransportClient,
    SSETransportClient,
    StdioTransportClient,
    TransportClient,
    TransportFactory,
)
from .types import (
    ConnectionState,
    MCPPrompt,
    MCPResource,
    MCPTool,
    PromptArgument,
    ServerHealth,
    TestConnectionResult,
    ToolCallResult,
)

__all__ = [
    # Registry
    "ConnectionRegistry",
    # Health
    "HealthMonitor",
    "ServerHealth",
    # Transports
    "TransportClient",
    "TransportFactory",
    "StdioTransportClient",
    "SSETransportClient",
    "HTTPTransportClient",
    # Pool
    "ConnectionPool",
    "PooledConnection",
    # Types
    "ConnectionState",
    "MCPTool",
    "MCPResource",
    "MCPPrompt",
    "PromptArgument",
    "ToolCallResult",
    "TestConnectionResult",
    # Protocol
    "JSONRPCMessage",
    "RequestIdGenerator",
]
