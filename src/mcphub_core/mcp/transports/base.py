"""Capability surface shared by every transport client."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

from mcphub_core.errors import HubError, classify_exception
from mcphub_core.mcp.types import MCPPrompt, MCPResource, MCPTool, ToolCallResult
from mcphub_core.types import TransportType


@runtime_checkable
class TransportClient(Protocol):
    """A live connection to one MCP server."""

    server_id: str
    transport_type: TransportType

    async def list_tools(self) -> list[MCPTool]: ...

    async def list_resources(self) -> list[MCPResource]: ...

    async def list_prompts(self) -> list[MCPPrompt]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult: ...

    async def close(self) -> None: ...


@contextmanager
def transport_errors(server_id: str, tool_name: str | None = None) -> Iterator[None]:
    """Re-raise anything but a HubError as a classified HubError.

    Unrecognized failures are treated as connection failures.
    """
    try:
        yield
    except HubError:
        raise
    except Exception as e:
        raise classify_exception(
            e,
            server_id=server_id,
            tool_name=tool_name,
            default_code="CONNECTION_FAILED",
        ) from e
