"""Unit tests for the request/response HTTP transport."""

import json

import pytest
from mcp.types import LATEST_PROTOCOL_VERSION
from mocks import MockMCPServer

from mcphub_core.auth import RateLimiter
from mcphub_core.config import AuthConfig, HTTPServerConfig
from mcphub_core.errors import HubError
from mcphub_core.mcp.pool import ConnectionPool
from mcphub_core.mcp.transports import HTTPTransportClient
from mcphub_core.types import AuthType


def _client(server: MockMCPServer, config: HTTPServerConfig, **kwargs) -> HTTPTransportClient:
    pool = ConnectionPool(client_factory=server.client_factory)
    return HTTPTransportClient(config, pool, **kwargs)


class TestHandshake:
    """Tests for initialize."""

    @pytest.mark.asyncio
    async def test_initialize_then_initialized_notification(self, http_config):
        server = MockMCPServer()
        client = _client(server, http_config)
        await client.start()
        assert server.methods == ["initialize", "notifications/initialized"]
        assert client.protocol_version == LATEST_PROTOCOL_VERSION
        assert client.server_info == {"name": "mock", "version": "1.0"}
        await client.close()

    @pytest.mark.asyncio
    async def test_session_and_version_headers(self, http_config):
        """Test later requests echo the session id and negotiated version."""
        server = MockMCPServer(session_id="abc")
        client = _client(server, http_config)
        await client.start()
        await client.list_tools()
        last = server.requests[-1]
        assert last.headers["Mcp-Session-Id"] == "abc"
        assert last.headers["MCP-Protocol-Version"] == LATEST_PROTOCOL_VERSION
        assert "Mcp-Session-Id" not in server.requests[0].headers
        await client.close()

    @pytest.mark.asyncio
    async def test_credentials_sent(self):
        config = HTTPServerConfig(
            id="remote",
            name="Remote",
            url="http://mcp.test/mcp",
            headers={"X-Trace": "1"},
            auth=AuthConfig(auth_type=AuthType.BEARER, bearer_token="t0ken"),
        )
        server = MockMCPServer()
        client = _client(server, config)
        await client.start()
        assert server.requests[0].headers["Authorization"] == "Bearer t0ken"
        assert server.requests[0].headers["X-Trace"] == "1"
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_credentials(self, http_config, status):
        """Test 401/403 classify as authentication failures."""
        client = _client(MockMCPServer(status_code=status), http_config)
        with pytest.raises(HubError) as exc_info:
            await client.start()
        assert exc_info.value.code == "AUTH_REJECTED"
        assert exc_info.value.classification == "AuthenticationError"
        assert exc_info.value.server_id == "remote"

    @pytest.mark.asyncio
    async def test_server_error(self, http_config):
        client = _client(MockMCPServer(status_code=502), http_config)
        with pytest.raises(HubError) as exc_info:
            await client.start()
        assert exc_info.value.classification == "ConnectionError"


class TestDiscovery:
    """Tests for capability listing."""

    @pytest.mark.asyncio
    async def test_tools_paginated(self, http_config):
        """Test every page is followed through nextCursor."""
        server = MockMCPServer(tools=[f"t{i}" for i in range(5)], page_size=2)
        client = _client(server, http_config)
        await client.start()
        tools = await client.list_tools()
        assert [t.name for t in tools] == ["t0", "t1", "t2", "t3", "t4"]
        assert server.methods.count("tools/list") == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_event_stream_responses(self, http_config):
        server = MockMCPServer(tools=["echo"], event_stream=True)
        client = _client(server, http_config)
        await client.start()
        assert [t.name for t in await client.list_tools()] == ["echo"]
        await client.close()

    @pytest.mark.asyncio
    async def test_undeclared_capabilities_skipped(self, http_config):
        """Test resources and prompts are not requested when not advertised."""
        server = MockMCPServer()
        client = _client(server, http_config)
        await client.start()
        assert await client.list_resources() == []
        assert await client.list_prompts() == []
        assert "resources/list" not in server.methods
        await client.close()

    @pytest.mark.asyncio
    async def test_method_not_found_is_empty(self, http_config):
        """Test servers answering METHOD_NOT_FOUND have no resources."""
        server = MockMCPServer()
        client = _client(server, http_config)
        await client.start()
        client.capabilities = {"tools": {}, "resources": {}}
        assert await client.list_resources() == []
        await client.close()


class TestCallTool:
    """Tests for tool calls."""

    @pytest.mark.asyncio
    async def test_success(self, http_config):
        client = _client(MockMCPServer(), http_config)
        await client.start()
        result = await client.call_tool("echo", {"text": "hi"})
        assert json.loads(result.content) == {"text": "hi"}
        assert result.raw_content[0]["type"] == "text"
        await client.close()

    @pytest.mark.asyncio
    async def test_is_error_becomes_tool_failure(self, http_config):
        """Test the upstream message is kept verbatim."""
        client = _client(MockMCPServer(), http_config)
        await client.start()
        with pytest.raises(HubError) as exc_info:
            await client.call_tool("fail", {})
        assert exc_info.value.code == "TOOL_FAILED"
        assert exc_info.value.message == "disk is full"
        assert exc_info.value.tool_name == "fail"
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limited(self, http_config):
        """Test requests past the limit never reach the server."""
        server = MockMCPServer()
        limiter = RateLimiter(max_requests=3, window_seconds=60)
        client = _client(server, http_config, rate_limiter=limiter)
        await client.start()
        await client.call_tool("echo", {})
        with pytest.raises(HubError) as exc_info:
            await client.call_tool("echo", {})
        assert exc_info.value.code == "RATE_LIMITED"
        assert len(server.requests) == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_close_releases_pooled_clients(self, http_config):
        server = MockMCPServer()
        pool = ConnectionPool(client_factory=server.client_factory)
        client = HTTPTransportClient(http_config, pool)
        await client.start()
        assert pool.get_stats()["total_connections"] == 1
        await client.close()
        assert pool.get_stats()["total_connections"] == 0
