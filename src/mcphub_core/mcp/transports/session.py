"""fastmcp client session shared by the stdio and SSE transports."""

import time
from contextlib import AsyncExitStack
from typing import Any

from fastmcp.client import Client
from fastmcp.client.transports import ClientTransport
from mcp.shared.exceptions import McpError

from mcphub_core.errors import create_error
from mcphub_core.mcp.protocol import METHOD_NOT_FOUND
from mcphub_core.mcp.types import MCPPrompt, MCPResource, MCPTool, ToolCallResult, extract_text

from .base import transport_errors


class FastMCPSession:
    """Owns one fastmcp ``Client`` context for a server."""

    def __init__(self, server_id: str, transport: ClientTransport, timeout: float):
        """Initialize the session.

        Args:
            server_id: Server identifier (used for error context)
            transport: fastmcp transport to drive
            timeout: Per-request timeout in seconds
        """
        self.server_id = server_id
        self._transport = transport
        self._timeout = timeout
        self._client: Client | None = None
        self._exit_stack: AsyncExitStack | None = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def open(self) -> None:
        """Run the initialize handshake.

        Raises:
            HubError: Classified connection or authentication failure
        """
        client = Client(
            transport=self._transport,
            timeout=self._timeout,
            name=f"mcphub-{self.server_id}",
        )
        exit_stack = AsyncExitStack()
        try:
            with transport_errors(self.server_id):
                await exit_stack.enter_async_context(client)
        except BaseException:
            await exit_stack.aclose()
            raise
        self._client = client
        self._exit_stack = exit_stack

    def _require_client(self) -> Client:
        if self._client is None:
            raise create_error(
                "CONNECTION_FAILED",
                server_id=self.server_id,
                detail="session is closed",
            )
        return self._client

    async def list_tools(self) -> list[MCPTool]:
        client = self._require_client()
        with transport_errors(self.server_id):
            tools = await client.list_tools()
        return [MCPTool.from_mcp(tool) for tool in tools]

    async def list_resources(self) -> list[MCPResource]:
        client = self._require_client()
        with transport_errors(self.server_id):
            try:
                resources = await client.list_resources()
            except McpError as e:
                if e.error.code == METHOD_NOT_FOUND:
                    return []
                raise
        return [MCPResource.from_mcp(resource) for resource in resources]

    async def list_prompts(self) -> list[MCPPrompt]:
        client = self._require_client()
        with transport_errors(self.server_id):
            try:
                prompts = await client.list_prompts()
            except McpError as e:
                if e.error.code == METHOD_NOT_FOUND:
                    return []
                raise
        return [MCPPrompt.from_mcp(prompt) for prompt in prompts]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        """Call a tool and unwrap its content.

        Raises:
            HubError(TOOL_FAILED): The tool reported isError
            HubError: Classified transport failure
        """
        client = self._require_client()
        start_time = time.monotonic()
        with transport_errors(self.server_id, tool_name=name):
            try:
                result = await client.call_tool_mcp(name, arguments)
            except McpError as e:
                raise create_error(
                    "TOOL_FAILED",
                    message=e.error.message,
                    tool_name=name,
                    server_id=self.server_id,
                ) from e

        content = [item.model_dump(mode="json", exclude_none=True) for item in result.content]
        text = extract_text(content)
        if result.isError:
            raise create_error(
                "TOOL_FAILED",
                message=text or f"Tool '{name}' reported an error",
                tool_name=name,
                server_id=self.server_id,
            )

        return ToolCallResult(
            tool_name=name,
            content=text,
            raw_content=content,
            structured_content=result.structuredContent,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

    async def close(self) -> None:
        """Leave the client context and shut the transport down."""
        exit_stack, self._exit_stack = self._exit_stack, None
        self._client = None
        try:
            if exit_stack is not None:
                await exit_stack.aclose()
        finally:
            await self._transport.close()
