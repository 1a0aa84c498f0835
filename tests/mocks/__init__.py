"""Test mocks for mcphub-core.

Provides stand-in implementations for testing:
- MockTransportClient / MockClientFactory: connection registry clients
- MockMCPServer: request/response MCP server behind httpx.MockTransport
- FakeCommandRunner: installer commands without subprocesses
- StaticSource / FakeClock: catalog sources and time
"""

from .mock_server import (
    FakeClock,
    FakeCommandRunner,
    MockClientFactory,
    MockMCPServer,
    MockTransportClient,
    StaticSource,
    npm_tarball,
)

__all__ = [
    "FakeClock",
    "FakeCommandRunner",
    "MockClientFactory",
    "MockMCPServer",
    "MockTransportClient",
    "StaticSource",
    "npm_tarball",
]
