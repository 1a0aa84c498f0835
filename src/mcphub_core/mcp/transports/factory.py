"""Builds and starts the transport client matching a server definition."""

import asyncio
import logging

from mcphub_core.auth.rate_limiter import RateLimiter
from mcphub_core.config.servers import (
    HTTPServerConfig,
    ServerConfig,
    SSEServerConfig,
    StdioServerConfig,
)
from mcphub_core.errors import create_error
from mcphub_core.mcp.pool import ConnectionPool

from .http import HTTPTransportClient
from .sse import SSETransportClient
from .stdio import StdioTransportClient

logger = logging.getLogger(__name__)

TransportClientImpl = StdioTransportClient | SSETransportClient | HTTPTransportClient


class TransportFactory:
    """Creates connected transport clients.

    Instances are callable, so a factory can be handed straight to the
    connection registry as its ``client_factory``.
    """

    def __init__(
        self,
        pool: ConnectionPool | None = None,
        rate_limiter: RateLimiter | None = None,
        connect_timeout: float = 30.0,
    ):
        self.pool = pool or ConnectionPool()
        self.rate_limiter = rate_limiter
        self.connect_timeout = connect_timeout

    def create(self, config: ServerConfig) -> TransportClientImpl:
        """Build an unstarted client for ``config``."""
        if isinstance(config, StdioServerConfig):
            return StdioTransportClient(config)
        if isinstance(config, SSEServerConfig):
            return SSETransportClient(config)
        if isinstance(config, HTTPServerConfig):
            return HTTPTransportClient(config, self.pool, self.rate_limiter)
        raise create_error(
            "CONFIG_INVALID",
            detail=f"Unsupported server definition: {type(config).__name__}",
        )

    async def __call__(self, config: ServerConfig) -> TransportClientImpl:
        """Build a client and complete its handshake.

        Raises:
            HubError(CONNECTION_TIMEOUT): Handshake exceeded connect_timeout
            HubError: Classified connection failure
        """
        client = self.create(config)
        try:
            await asyncio.wait_for(client.start(), timeout=self.connect_timeout)
        except TimeoutError as e:
            await _discard(client)
            raise create_error(
                "CONNECTION_TIMEOUT",
                server_id=config.id,
                timeout_seconds=self.connect_timeout,
            ) from e
        except BaseException:
            await _discard(client)
            raise
        return client


async def _discard(client: TransportClientImpl) -> None:
    """Close a client whose handshake failed, keeping the original error."""
    try:
        await client.close()
    except Exception as e:
        logger.debug("Error closing client for %s after failed start: %s", client.server_id, e)
