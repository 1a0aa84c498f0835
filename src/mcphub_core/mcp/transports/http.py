"""Request/response transport: one JSON-RPC POST per protocol operation."""

import math
import time
from typing import Any

import httpx
from mcp.shared.exceptions import McpError
from mcp.types import LATEST_PROTOCOL_VERSION, ErrorData

from mcphub_core.auth.credentials import merge_headers
from mcphub_core.auth.rate_limiter import RateLimiter
from mcphub_core.config.servers import HTTPServerConfig
from mcphub_core.errors import create_error
from mcphub_core.mcp.pool import ConnectionPool
from mcphub_core.mcp.protocol import METHOD_NOT_FOUND, JSONRPCMessage, RequestIdGenerator
from mcphub_core.mcp.types import MCPPrompt, MCPResource, MCPTool, ToolCallResult, extract_text
from mcphub_core.types import TransportType

from .base import transport_errors

CLIENT_NAME = "mcphub-core"
CLIENT_VERSION = "0.1.0"
SESSION_HEADER = "Mcp-Session-Id"
PROTOCOL_HEADER = "MCP-Protocol-Version"
MAX_PAGES = 100


class HTTPTransportClient:
    """Client for a server that answers each JSON-RPC request in the HTTP response.

    Every request passes the per-server rate limiter, then borrows a pooled
    httpx client. Requests carry their own ids, so concurrent calls are allowed.
    """

    transport_type = TransportType.HTTP

    def __init__(
        self,
        config: HTTPServerConfig,
        pool: ConnectionPool,
        rate_limiter: RateLimiter | None = None,
    ):
        """Initialize the client.

        Args:
            config: Server definition
            pool: Shared pool of httpx clients
            rate_limiter: Optional shared limiter keyed by server id
        """
        self.server_id = config.id
        self.config = config
        self._pool = pool
        self._rate_limiter = rate_limiter
        self._headers = merge_headers(config)
        self._ids = RequestIdGenerator()
        self._session_id: str | None = None
        self.protocol_version: str | None = None
        self.server_info: dict[str, Any] | None = None
        self.capabilities: dict[str, Any] | None = None

    async def start(self) -> None:
        """Run the initialize handshake.

        Raises:
            HubError: Classified connection or authentication failure
        """
        with transport_errors(self.server_id):
            result = await self._request(
                "initialize",
                {
                    "protocolVersion": LATEST_PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": CLIENT_NAME, "version": CLIENT_VERSION},
                },
            )
            self.protocol_version = result.get("protocolVersion")
            self.server_info = result.get("serverInfo")
            self.capabilities = result.get("capabilities") or {}
            await self._notify("notifications/initialized")

    async def list_tools(self) -> list[MCPTool]:
        with transport_errors(self.server_id):
            items = await self._paginate("tools/list", "tools")
        return [MCPTool.from_mcp(item) for item in items]

    async def list_resources(self) -> list[MCPResource]:
        items = await self._optional_listing("resources", "resources/list")
        return [MCPResource.from_mcp(item) for item in items]

    async def list_prompts(self) -> list[MCPPrompt]:
        items = await self._optional_listing("prompts", "prompts/list")
        return [MCPPrompt.from_mcp(item) for item in items]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        """Call a tool.

        Raises:
            HubError(TOOL_FAILED): The tool reported isError or a JSON-RPC error
            HubError: Classified transport failure
        """
        start_time = time.monotonic()
        with transport_errors(self.server_id, tool_name=name):
            try:
                result = await self._request(
                    "tools/call", {"name": name, "arguments": arguments or {}}
                )
            except McpError as e:
                raise create_error(
                    "TOOL_FAILED",
                    message=e.error.message,
                    tool_name=name,
                    server_id=self.server_id,
                ) from e

        content = result.get("content") or []
        text = extract_text(content)
        if result.get("isError"):
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
            structured_content=result.get("structuredContent"),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

    async def close(self) -> None:
        """Drop this server's pooled clients."""
        self._session_id = None
        await self._pool.clear_server(self.server_id)

    async def _optional_listing(self, capability: str, method: str) -> list[dict[str, Any]]:
        """List a capability the server may not implement."""
        if self.capabilities is not None and capability not in self.capabilities:
            return []
        with transport_errors(self.server_id):
            try:
                return await self._paginate(method, capability)
            except McpError as e:
                if e.error.code == METHOD_NOT_FOUND:
                    return []
                raise

    async def _paginate(self, method: str, key: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        cursor: str | None = None
        for _ in range(MAX_PAGES):
            result = await self._request(method, {"cursor": cursor} if cursor else None)
            items.extend(result.get(key) or [])
            cursor = result.get("nextCursor")
            if not cursor:
                break
        return items

    async def _request(self, method: str, params: dict[str, Any] | None) -> dict[str, Any]:
        """Send one request and return its result.

        Raises:
            McpError: The server answered with a JSON-RPC error
            HubError: Transport, auth or protocol failure
        """
        request_id = self._ids.next()
        response = await self._post(JSONRPCMessage.request(method, params, id=request_id))
        message = self._read_response(response, request_id)

        if JSONRPCMessage.is_error(message):
            error = JSONRPCMessage.get_error(message)
            raise McpError(
                ErrorData(
                    code=error.get("code", 0),
                    message=error.get("message", "Unknown error"),
                    data=error.get("data"),
                )
            )
        result = JSONRPCMessage.get_result(message)
        return result if isinstance(result, dict) else {}

    async def _notify(self, method: str) -> None:
        await self._post(JSONRPCMessage.notification(method))

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self._rate_limiter is not None:
            verdict = self._rate_limiter.check_limit(self.server_id)
            if not verdict.allowed:
                raise create_error(
                    "RATE_LIMITED",
                    server_id=self.server_id,
                    retry_after=math.ceil(verdict.retry_after),
                )

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            **self._headers,
        }
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id
        if self.protocol_version:
            headers[PROTOCOL_HEADER] = self.protocol_version

        async with self._pool.connection(self.server_id, self.config.url) as conn:
            response = await conn.client.post(
                self.config.url,
                json=payload,
                headers=headers,
                timeout=self.config.timeout,
            )
        response.raise_for_status()

        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id
        return response

    def _read_response(self, response: httpx.Response, request_id: int) -> dict[str, Any]:
        content_type = response.headers.get("content-type", "")
        try:
            if content_type.startswith("text/event-stream"):
                messages = JSONRPCMessage.parse_event_stream(response.text)
            else:
                messages = [JSONRPCMessage.parse(response.content)]
        except ValueError as e:
            raise create_error(
                "PROTOCOL_ERROR",
                server_id=self.server_id,
                detail=f"Unreadable response body: {e}",
            ) from e

        for message in messages:
            if JSONRPCMessage.is_response(message) and message.get("id") == request_id:
                return message

        raise create_error(
            "PROTOCOL_ERROR",
            server_id=self.server_id,
            detail=f"No response for request {request_id}",
        )
