"""Health Monitor - periodic liveness checks with automatic reconnection."""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from mcphub_core.config.servers import ServerConfig
from mcphub_core.errors import HubError, create_error
from mcphub_core.types import HealthStatus

from .registry import ConnectionRegistry
from .types import ServerHealth

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL = 30.0
DEFAULT_TIMEOUT = 5.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEGRADED_FRACTION = 0.8

HealthListener = Callable[[ServerHealth], None]


def backoff_delay(retry_delay: float, attempt: int) -> float:
    """Delay before reconnect attempt ``attempt`` (1-based)."""
    return retry_delay * 2 ** (attempt - 1)


class HealthMonitor:
    """Checks monitored servers on an interval and reconnects offline ones.

    A check gets (or creates) the client through the registry and lists its
    tools, each step bounded by ``timeout``. A server that answers slower
    than 80% of the timeout is degraded. After a failed check the monitor
    waits ``retry_delay * 2 ** (n - 1)`` and reconnects, for as long as the
    consecutive failure count ``n`` does not exceed ``max_retries``.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        """Initialize health monitor.

        Args:
            registry: Registry owning the monitored connections
            check_interval: Seconds between checks of one server
            timeout: Seconds allowed for each step of a check
            max_retries: Reconnect attempts before the monitor gives up
            retry_delay: Base delay in seconds of the reconnect backoff
        """
        self._registry = registry
        self.check_interval = check_interval
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._configs: dict[str, ServerConfig] = {}
        self._health: dict[str, ServerHealth] = {}
        self._started: dict[str, float] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._listeners: list[HealthListener] = []

    def start_monitoring(self, config: ServerConfig) -> None:
        """Begin checking ``config.id``, replacing any earlier monitoring of it.

        Must be called from within the running event loop.
        """
        task = self._tasks.pop(config.id, None)
        if task is not None:
            task.cancel()
        self._configs[config.id] = config
        self._health[config.id] = ServerHealth(server_id=config.id)
        self._started[config.id] = time.monotonic()
        self._tasks[config.id] = asyncio.create_task(self._monitor_loop(config.id))
        logger.info("Started health monitoring for %s", config.id)

    async def stop_monitoring(self, server_id: str) -> None:
        task = self._tasks.pop(server_id, None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._configs.pop(server_id, None)
        self._health.pop(server_id, None)
        self._started.pop(server_id, None)
        if task is not None:
            logger.info("Stopped health monitoring for %s", server_id)

    async def stop_all(self) -> None:
        await asyncio.gather(*(self.stop_monitoring(sid) for sid in list(self._configs)))

    def is_monitoring(self, server_id: str) -> bool:
        return server_id in self._tasks

    def get_health(self, server_id: str) -> ServerHealth | None:
        return self._health.get(server_id)

    def get_all_health(self) -> list[ServerHealth]:
        return list(self._health.values())

    def add_listener(self, listener: HealthListener) -> None:
        """Call ``listener`` with every new health record."""
        self._listeners.append(listener)

    def remove_listener(self, listener: HealthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def check_server(self, server_id: str) -> ServerHealth:
        """Run one check of a monitored server and record the result.

        Raises:
            HubError(SERVER_NOT_FOUND): The id is not monitored
        """
        config = self._configs.get(server_id)
        if config is None:
            raise create_error("SERVER_NOT_FOUND", server_id=server_id)

        start = time.monotonic()
        previous = self._health.get(server_id)
        try:
            client = await asyncio.wait_for(
                self._registry.get_or_create_client(config), self.timeout
            )
            await asyncio.wait_for(client.list_tools(), self.timeout)
        except Exception as e:
            health = ServerHealth(
                server_id=server_id,
                status=HealthStatus.OFFLINE,
                last_check=datetime.now(UTC),
                failure_count=(previous.failure_count if previous else 0) + 1,
                last_error=self._describe(e),
            )
            logger.warning(
                "Health check failed for %s (%d in a row): %s",
                server_id,
                health.failure_count,
                health.last_error,
            )
        else:
            elapsed = time.monotonic() - start
            status = HealthStatus.HEALTHY
            if elapsed > self.timeout * DEGRADED_FRACTION:
                status = HealthStatus.DEGRADED
            health = ServerHealth(
                server_id=server_id,
                status=status,
                last_check=datetime.now(UTC),
                uptime_seconds=time.monotonic() - self._started.get(server_id, start),
                response_time_ms=int(elapsed * 1000),
            )
            logger.debug("Health check passed for %s in %dms", server_id, health.response_time_ms)

        self._publish(health)
        return health

    async def reconnect(self, server_id: str) -> ServerHealth:
        """Drop and re-create the connection of a monitored server.

        On success the failure count is reset and the server is healthy.

        Raises:
            HubError(SERVER_NOT_FOUND): The id is not monitored
            HubError: Classified connection failure
        """
        config = self._configs.get(server_id)
        if config is None:
            raise create_error("SERVER_NOT_FOUND", server_id=server_id)

        await self._registry.disconnect_client(server_id)
        self._started[server_id] = time.monotonic()
        await self._registry.connect(config)
        logger.info("Reconnected to %s", server_id)

        health = self._health.get(server_id) or ServerHealth(server_id=server_id)
        health.failure_count = 0
        health.status = HealthStatus.HEALTHY
        health.last_error = None
        self._publish(health)
        return health

    async def _monitor_loop(self, server_id: str) -> None:
        while True:
            health = await self.check_server(server_id)
            if health.status == HealthStatus.OFFLINE:
                if health.failure_count <= self.max_retries:
                    await self._retry(server_id, health.failure_count)
                else:
                    logger.error("Max retries exceeded for %s", server_id)
            await asyncio.sleep(self.check_interval)

    async def _retry(self, server_id: str, attempt: int) -> None:
        delay = backoff_delay(self.retry_delay, attempt)
        logger.info("Reconnecting to %s in %.1fs (attempt %d)", server_id, delay, attempt)
        await asyncio.sleep(delay)
        try:
            await self.reconnect(server_id)
        except Exception as e:
            logger.error("Reconnect failed for %s: %s", server_id, self._describe(e))

    def _describe(self, error: Exception) -> str:
        if isinstance(error, HubError):
            return error.message
        if isinstance(error, TimeoutError):
            return f"Health check timed out after {self.timeout}s"
        return str(error) or type(error).__name__

    def _publish(self, health: ServerHealth) -> None:
        if health.server_id not in self._configs:
            return
        self._health[health.server_id] = health
        for listener in list(self._listeners):
            try:
                listener(health)
            except Exception as e:
                logger.error("Health listener failed: %s", e)
