"""Subprocess transport: MCP over the child's stdin/stdout."""

import asyncio
import os
from typing import Any

from fastmcp.client.transports import StdioTransport

from mcphub_core.config.servers import StdioServerConfig
from mcphub_core.mcp.types import MCPPrompt, MCPResource, MCPTool, ToolCallResult
from mcphub_core.types import TransportType

from .session import FastMCPSession


class StdioTransportClient:
    """Client for a server spawned as a subprocess.

    The pipe carries one request at a time, so every round trip holds a lock.
    Closing the client terminates the child process.
    """

    transport_type = TransportType.STDIO

    def __init__(self, config: StdioServerConfig):
        self.server_id = config.id
        self.config = config
        transport = StdioTransport(
            command=config.command,
            args=list(config.args),
            env={**os.environ, **config.env},
            cwd=config.cwd,
            keep_alive=False,
        )
        self._session = FastMCPSession(config.id, transport, timeout=config.timeout)
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        await self._session.open()

    async def list_tools(self) -> list[MCPTool]:
        async with self._lock:
            return await self._session.list_tools()

    async def list_resources(self) -> list[MCPResource]:
        async with self._lock:
            return await self._session.list_resources()

    async def list_prompts(self) -> list[MCPPrompt]:
        async with self._lock:
            return await self._session.list_prompts()

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        async with self._lock:
            return await self._session.call_tool(name, arguments)

    async def close(self) -> None:
        await self._session.close()
