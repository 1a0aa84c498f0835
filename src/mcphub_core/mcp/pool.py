"""Pooled httpx clients for request/response MCP servers."""

import asyncio
import itertools
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx

from mcphub_core.errors import create_error

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS = 10
DEFAULT_MAX_IDLE_TIME = 60.0
DEFAULT_MAX_CONNECTION_AGE = 300.0
DEFAULT_ACQUIRE_TIMEOUT = 30.0


@dataclass
class PooledConnection:
    """One pooled client bound to a server URL."""

    id: str
    server_id: str
    url: str
    client: httpx.AsyncClient
    created_at: float
    last_used_at: float
    use_count: int = 0
    in_use: bool = False


class ConnectionPool:
    """Per-server pool of httpx clients.

    At most ``max_connections`` clients exist per server. Callers beyond that
    wait for a release, bounded by ``acquire_timeout``.
    """

    def __init__(
        self,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        max_idle_time: float = DEFAULT_MAX_IDLE_TIME,
        max_connection_age: float = DEFAULT_MAX_CONNECTION_AGE,
        acquire_timeout: float = DEFAULT_ACQUIRE_TIMEOUT,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the pool.

        Args:
            max_connections: Clients allowed per server
            max_idle_time: Seconds an unused client may stay open
            max_connection_age: Seconds after which a client is retired
            acquire_timeout: Seconds to wait for a free client
            client_factory: Builds new clients (injectable for tests)
            clock: Monotonic time source
        """
        self.max_connections = max_connections
        self.max_idle_time = max_idle_time
        self.max_connection_age = max_connection_age
        self.acquire_timeout = acquire_timeout
        self._client_factory = client_factory or httpx.AsyncClient
        self._clock = clock
        self._pools: dict[str, list[PooledConnection]] = {}
        self._ids = itertools.count(1)
        self._condition = asyncio.Condition()

    async def acquire(self, server_id: str, url: str) -> PooledConnection:
        """Take a client for ``server_id``, creating one if the pool has room.

        Raises:
            HubError(CONNECTION_TIMEOUT): If no client frees up in time
        """
        evicted: list[PooledConnection] = []
        try:
            async with self._condition:
                deadline = self._clock() + self.acquire_timeout
                while True:
                    pool = self._pools.setdefault(server_id, [])
                    conn = next((c for c in pool if not c.in_use and c.url == url), None)

                    if conn is None and len(pool) >= self.max_connections:
                        # Free a slot held by an idle client for another URL
                        stale = next((c for c in pool if not c.in_use), None)
                        if stale is not None:
                            pool.remove(stale)
                            evicted.append(stale)

                    if conn is None and len(pool) < self.max_connections:
                        now = self._clock()
                        conn = PooledConnection(
                            id=f"{server_id}-{next(self._ids)}",
                            server_id=server_id,
                            url=url,
                            client=self._client_factory(),
                            created_at=now,
                            last_used_at=now,
                        )
                        pool.append(conn)

                    if conn is not None:
                        conn.in_use = True
                        conn.use_count += 1
                        conn.last_used_at = self._clock()
                        return conn

                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        raise create_error(
                            "CONNECTION_TIMEOUT",
                            server_id=server_id,
                            timeout_seconds=self.acquire_timeout,
                        )
                    try:
                        await asyncio.wait_for(self._condition.wait(), timeout=remaining)
                    except TimeoutError:
                        continue
        finally:
            for conn in evicted:
                await self._close(conn)

    async def release(self, conn: PooledConnection) -> None:
        """Return a client to the pool and wake one waiter."""
        async with self._condition:
            conn.in_use = False
            conn.last_used_at = self._clock()
            self._condition.notify()

    @asynccontextmanager
    async def connection(self, server_id: str, url: str) -> AsyncIterator[PooledConnection]:
        """Acquire a client for the duration of the block."""
        conn = await self.acquire(server_id, url)
        try:
            yield conn
        finally:
            await self.release(conn)

    async def clear_server(self, server_id: str) -> int:
        """Close every client of ``server_id``.

        Returns:
            Number of clients closed
        """
        async with self._condition:
            removed = self._pools.pop(server_id, [])
            self._condition.notify_all()
        for conn in removed:
            await self._close(conn)
        return len(removed)

    async def close_all(self) -> int:
        """Close every pooled client."""
        async with self._condition:
            removed = [conn for pool in self._pools.values() for conn in pool]
            self._pools.clear()
            self._condition.notify_all()
        for conn in removed:
            await self._close(conn)
        return len(removed)

    async def cleanup_idle(self) -> int:
        """Close unused clients past the idle or age limits.

        Returns:
            Number of clients closed
        """
        now = self._clock()
        expired: list[PooledConnection] = []
        async with self._condition:
            for server_id in list(self._pools):
                keep = []
                for conn in self._pools[server_id]:
                    idle = now - conn.last_used_at > self.max_idle_time
                    old = now - conn.created_at > self.max_connection_age
                    if not conn.in_use and (idle or old):
                        expired.append(conn)
                    else:
                        keep.append(conn)
                if keep:
                    self._pools[server_id] = keep
                else:
                    del self._pools[server_id]
            if expired:
                self._condition.notify_all()

        for conn in expired:
            await self._close(conn)
        if expired:
            logger.debug("Closed %d idle pooled connections", len(expired))
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        """Pool occupancy, overall and per server."""
        by_server = {
            server_id: {
                "total": len(pool),
                "active": sum(1 for c in pool if c.in_use),
                "idle": sum(1 for c in pool if not c.in_use),
            }
            for server_id, pool in self._pools.items()
        }
        return {
            "total_connections": sum(s["total"] for s in by_server.values()),
            "active_connections": sum(s["active"] for s in by_server.values()),
            "idle_connections": sum(s["idle"] for s in by_server.values()),
            "by_server": by_server,
        }

    async def _close(self, conn: PooledConnection) -> None:
        try:
            await conn.client.aclose()
        except (httpx.HTTPError, RuntimeError) as e:
            logger.warning("Error closing pooled connection %s: %s", conn.id, e)
