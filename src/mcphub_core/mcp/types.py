"""MCP capability and connection-state types."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mcphub_core.types import ConnectionStatus, HealthStatus


def _as_dict(item: Any) -> dict[str, Any]:
    """Normalize an ``mcp.types`` model or a raw JSON-RPC mapping to a dict."""
    if isinstance(item, dict):
        return item
    return item.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class MCPTool:
    """Tool advertised by a server."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=lambda: {"type": "object"})

    @classmethod
    def from_mcp(cls, item: Any) -> "MCPTool":
        data = _as_dict(item)
        return cls(
            name=data["name"],
            description=data.get("description") or "",
            input_schema=data.get("inputSchema") or {"type": "object"},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass
class MCPResource:
    """Resource advertised by a server."""

    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = None

    @classmethod
    def from_mcp(cls, item: Any) -> "MCPResource":
        data = _as_dict(item)
        return cls(
            uri=str(data["uri"]),
            name=data.get("name") or str(data["uri"]),
            description=data.get("description"),
            mime_type=data.get("mimeType"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass
class PromptArgument:
    name: str
    description: str | None = None
    required: bool = False


@dataclass
class MCPPrompt:
    """Prompt template advertised by a server."""

    name: str
    description: str | None = None
    arguments: list[PromptArgument] = field(default_factory=list)

    @classmethod
    def from_mcp(cls, item: Any) -> "MCPPrompt":
        data = _as_dict(item)
        return cls(
            name=data["name"],
            description=data.get("description"),
            arguments=[
                PromptArgument(
                    name=arg["name"],
                    description=arg.get("description"),
                    required=bool(arg.get("required", False)),
                )
                for arg in data.get("arguments") or []
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [
                {"name": a.name, "description": a.description, "required": a.required}
                for a in self.arguments
            ],
        }


@dataclass
class ToolCallResult:
    """Result of a successful tool call.

    ``content`` is the concatenated text content; ``raw_content`` keeps every
    content item as returned by the server (text, image, resource, ...).
    """

    tool_name: str
    content: str
    raw_content: list[dict[str, Any]] = field(default_factory=list)
    structured_content: dict[str, Any] | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "content": self.content,
            "raw_content": self.raw_content,
            "structured_content": self.structured_content,
            "duration_ms": self.duration_ms,
        }


def extract_text(content: list[dict[str, Any]]) -> str:
    """Concatenate the text items of a tool result."""
    parts = []
    for item in content:
        if item.get("type") == "text":
            parts.append(item.get("text", ""))
    return "\n".join(parts)


@dataclass
class ConnectionState:
    """Protocol-level state of one server connection.

    Created on the first connection attempt, mutated on every status
    transition, removed on explicit disconnect.
    """

    server_id: str
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    connected_at: datetime | None = None  # set iff status is CONNECTED
    error: str | None = None  # current error, set iff status is ERROR
    last_error: str | None = None  # most recent error, kept across reconnects
    error_category: str | None = None  # classification of last_error
    error_count: int = 0  # reset to 0 only on a transition into CONNECTED
    tools: list[MCPTool] = field(default_factory=list)
    resources: list[MCPResource] = field(default_factory=list)
    prompts: list[MCPPrompt] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "server_id": self.server_id,
            "status": self.status.value,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "error": self.error,
            "last_error": self.last_error,
            "error_category": self.error_category,
            "error_count": self.error_count,
            "tools": [t.to_dict() for t in self.tools],
            "resources": [r.to_dict() for r in self.resources],
            "prompts": [p.to_dict() for p in self.prompts],
        }


@dataclass
class ServerHealth:
    """Latest health check of one monitored server."""

    server_id: str
    status: HealthStatus = HealthStatus.HEALTHY
    last_check: datetime | None = None
    uptime_seconds: float = 0.0  # since monitoring start or the last reconnect; 0 when offline
    response_time_ms: int = 0
    failure_count: int = 0  # consecutive failed checks
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "server_id": self.server_id,
            "status": self.status.value,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "uptime_seconds": self.uptime_seconds,
            "response_time_ms": self.response_time_ms,
            "failure_count": self.failure_count,
            "last_error": self.last_error,
        }


@dataclass
class TestConnectionResult:
    """Outcome of an ephemeral test connection."""

    __test__ = False  # not a pytest test class

    success: bool
    message: str
    latency_ms: int
    tools: list[MCPTool] = field(default_factory=list)
    resources: list[MCPResource] = field(default_factory=list)
    prompts: list[MCPPrompt] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "latency_ms": self.latency_ms,
            "tools": [t.to_dict() for t in self.tools],
            "resources": [r.to_dict() for r in self.resources],
            "prompts": [p.to_dict() for p in self.prompts],
            "error": self.error,
        }
