"""Push-stream transport: MCP over server-sent events."""

from typing import Any

from fastmcp.client.transports import SSETransport

from mcphub_core.auth.credentials import merge_headers
from mcphub_core.config.servers import SSEServerConfig
from mcphub_core.mcp.types import MCPPrompt, MCPResource, MCPTool, ToolCallResult
from mcphub_core.types import TransportType

from .session import FastMCPSession


class SSETransportClient:
    """Client for a server reached through an SSE stream.

    Requests are posted on a side channel and correlated by message id, so
    concurrent calls are allowed.
    """

    transport_type = TransportType.SSE

    def __init__(self, config: SSEServerConfig):
        self.server_id = config.id
        self.config = config
        transport = SSETransport(url=config.url, headers=merge_headers(config))
        self._session = FastMCPSession(config.id, transport, timeout=config.timeout)

    async def start(self) -> None:
        await self._session.open()

    async def list_tools(self) -> list[MCPTool]:
        return await self._session.list_tools()

    async def list_resources(self) -> list[MCPResource]:
        return await self._session.list_resources()

    async def list_prompts(self) -> list[MCPPrompt]:
        return await self._session.list_prompts()

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        return await self._session.call_tool(name, arguments)

    async def close(self) -> None:
        await self._session.close()
