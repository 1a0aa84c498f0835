"""Connection registry - owns the one live transport client per server id."""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from mcphub_core.config.servers import ServerConfig
from mcphub_core.errors import ErrorCategory, HubError, classify_exception, create_error
from mcphub_core.logging.logger import HubLogger, ServerLogger
from mcphub_core.types import ConnectionStatus

from .transports.base import TransportClient
from .types import ConnectionState, ToolCallResult

ClientFactory = Callable[[ServerConfig], Awaitable[TransportClient]]

# Failures during a tool call that mean the connection itself is unhealthy
_CONNECTION_CATEGORIES = (ErrorCategory.CONNECTION, ErrorCategory.AUTHENTICATION)
# Refused before reaching the server, so the connection stays as it was
_STATE_NEUTRAL_CODES = ("RATE_LIMITED",)


class ConnectionRegistry:
    """Holds at most one active client per server id and its ConnectionState.

    Connect, reconnect and disconnect for one id are serialized by a per-id
    lock. Operations on different ids never wait on each other.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        logger: HubLogger | None = None,
        discovery_timeout: float = 30.0,
        disconnect_timeout: float = 5.0,
    ):
        """Initialize the registry.

        Args:
            client_factory: Builds and starts a client for a server definition
            logger: Optional logger
            discovery_timeout: Bound on capability discovery in seconds
            disconnect_timeout: Bound on closing a client in seconds
        """
        self._client_factory = client_factory
        self._logger = logger
        self.discovery_timeout = discovery_timeout
        self.disconnect_timeout = disconnect_timeout
        self._clients: dict[str, TransportClient] = {}
        self._states: dict[str, ConnectionState] = {}
        self._configs: dict[str, ServerConfig] = {}
        self._names: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _locked(self, server_id: str) -> AsyncIterator[None]:
        """Hold the lock of ``server_id``.

        The lock is discarded once nobody holds or awaits it and the id has
        neither a client nor a state.
        """
        self._lock_users[server_id] = self._lock_users.get(server_id, 0) + 1
        try:
            lock = self._locks.get(server_id)
            if lock is None:
                lock = self._locks[server_id] = asyncio.Lock()
            async with lock:
                yield
        finally:
            self._lock_users[server_id] -= 1
            if not self._lock_users[server_id]:
                del self._lock_users[server_id]
                if server_id not in self._clients and server_id not in self._states:
                    self._locks.pop(server_id, None)

    def _server_log(self, server_id: str) -> ServerLogger | None:
        if self._logger:
            return self._logger.server(server_id, self._names.get(server_id))
        return None

    async def get_or_create_client(self, config: ServerConfig) -> TransportClient:
        """Return the client for ``config.id``, creating it when needed.

        An existing client is reused while its status is connected or
        connecting. A client in any other status is closed and replaced.

        Raises:
            HubError: Classified connection or authentication failure,
                already recorded in the ConnectionState
        """
        async with self._locked(config.id):
            return await self._get_or_create_locked(config)

    async def get_connection_state(
        self,
        server_id: str,
        name: str,
        client: TransportClient,
    ) -> ConnectionState:
        """Run capability discovery on ``client`` and record the outcome.

        Never raises: a failed discovery yields a state with status ``error``.
        """
        self._names.setdefault(server_id, name)
        state, _ = await self._discover(server_id, client, time.monotonic())
        return state

    async def connect(self, config: ServerConfig) -> ConnectionState:
        """Get or create the client, then discover its capabilities.

        Returns:
            ConnectionState with status ``connected``

        Raises:
            HubError: Classified failure, recorded in the ConnectionState
        """
        async with self._locked(config.id):
            return await self._connect_locked(config)

    async def reconnect(self, server_id: str) -> ConnectionState:
        """Replace the client of ``server_id`` using its last definition.

        Raises:
            HubError(SERVER_NOT_FOUND): No definition is known for the id
            HubError: Classified connection failure
        """
        config = self._configs.get(server_id)
        if config is None:
            raise create_error("SERVER_NOT_FOUND", server_id=server_id)
        async with self._locked(server_id):
            await self._drop_client(server_id)
            return await self._connect_locked(config)

    async def disconnect_client(self, server_id: str) -> None:
        """Close and forget the client and state of ``server_id``.

        The client leaves the active set before its transport finishes
        closing. Close failures are logged, not raised.
        """
        async with self._locked(server_id):
            slog = self._server_log(server_id)
            had_client = await self._drop_client(server_id)
            had_state = self._states.pop(server_id, None) is not None
            self._configs.pop(server_id, None)
            self._names.pop(server_id, None)
            if slog and (had_client or had_state):
                slog.disconnected()

    async def disconnect_all(self) -> None:
        """Disconnect every known server."""
        server_ids = set(self._clients) | set(self._states)
        await asyncio.gather(*(self.disconnect_client(sid) for sid in server_ids))

    def get_active_client(self, server_id: str) -> TransportClient | None:
        return self._clients.get(server_id)

    def get_active_client_ids(self) -> list[str]:
        return list(self._clients)

    def get_state(self, server_id: str) -> ConnectionState | None:
        return self._states.get(server_id)

    def list_states(self) -> list[ConnectionState]:
        return list(self._states.values())

    def get_config(self, server_id: str) -> ServerConfig | None:
        return self._configs.get(server_id)

    async def call_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> ToolCallResult:
        """Call a tool on the active client of ``server_id``.

        Tool failures leave the connection status alone. Connection and
        authentication failures move it to ``error``.

        Raises:
            HubError(SERVER_NOT_FOUND): No active client for the id
            HubError(TOOL_FAILED): The tool reported an error
            HubError: Classified connection failure
        """
        client = self._clients.get(server_id)
        if client is None:
            raise create_error("SERVER_NOT_FOUND", server_id=server_id, tool_name=tool_name)

        slog = self._server_log(server_id)
        if slog:
            slog.tool_calling(tool_name, arguments)

        start_time = time.monotonic()
        try:
            result = await client.call_tool(tool_name, arguments or {})
        except Exception as e:
            error = classify_exception(
                e,
                server_id=server_id,
                tool_name=tool_name,
                default_code="CONNECTION_FAILED",
            )
            if (
                error.category in _CONNECTION_CATEGORIES
                and error.code not in _STATE_NEUTRAL_CODES
            ):
                state = self._states.get(server_id)
                if state is not None:
                    self._record_failure(state, error)
            if slog:
                slog.tool_error(tool_name, error.message, _elapsed_ms(start_time))
            if error is e:
                raise
            raise error from e

        if slog:
            slog.tool_result(tool_name, result.content, result.duration_ms)
        return result

    async def _connect_locked(self, config: ServerConfig) -> ConnectionState:
        start_time = time.monotonic()
        client = await self._get_or_create_locked(config)
        state = self._states[config.id]
        if state.status == ConnectionStatus.CONNECTED:
            return state

        state, error = await self._discover(config.id, client, start_time)
        if error is not None:
            await self._drop_client(config.id)
            raise error
        return state

    async def _get_or_create_locked(self, config: ServerConfig) -> TransportClient:
        server_id = config.id
        state = self._states.get(server_id)
        existing = self._clients.get(server_id)
        if existing is not None and state is not None and state.status in (
            ConnectionStatus.CONNECTED,
            ConnectionStatus.CONNECTING,
        ):
            return existing
        if existing is not None:
            await self._drop_client(server_id)

        self._configs[server_id] = config
        self._names[server_id] = config.name
        if state is None:
            state = self._states[server_id] = ConnectionState(server_id=server_id)
        self._mark_connecting(state)

        slog = self._server_log(server_id)
        if slog:
            slog.connecting(config.transport_type.value)

        try:
            client = await self._client_factory(config)
        except Exception as e:
            error = classify_exception(e, server_id=server_id, default_code="CONNECTION_FAILED")
            self._record_outcome(state, error)
            if error is e:
                raise
            raise error from e

        self._clients[server_id] = client
        return client

    async def _discover(
        self,
        server_id: str,
        client: TransportClient,
        start_time: float,
    ) -> tuple[ConnectionState, HubError | None]:
        state = self._states.get(server_id)
        if state is None:
            state = self._states[server_id] = ConnectionState(server_id=server_id)

        try:
            tools, resources, prompts = await asyncio.wait_for(
                self._list_capabilities(client),
                timeout=self.discovery_timeout,
            )
        except TimeoutError:
            error = create_error(
                "CONNECTION_TIMEOUT",
                server_id=server_id,
                timeout_seconds=self.discovery_timeout,
            )
            self._record_failure(state, error)
            return state, error
        except Exception as e:
            error = classify_exception(e, server_id=server_id, default_code="CONNECTION_FAILED")
            self._record_outcome(state, error)
            return state, error

        state.status = ConnectionStatus.CONNECTED
        state.connected_at = datetime.now(UTC)
        state.error = None
        state.error_count = 0
        state.tools = tools
        state.resources = resources
        state.prompts = prompts

        slog = self._server_log(server_id)
        if slog:
            slog.connected(len(tools), len(resources), len(prompts), _elapsed_ms(start_time))
        return state, None

    async def _list_capabilities(self, client: TransportClient) -> tuple[list, list, list]:
        tools = await client.list_tools()
        resources = await client.list_resources()
        prompts = await client.list_prompts()
        return tools, resources, prompts

    def _mark_connecting(self, state: ConnectionState) -> None:
        state.status = ConnectionStatus.CONNECTING
        state.connected_at = None
        state.error = None
        state.tools = []
        state.resources = []
        state.prompts = []

    def _record_outcome(self, state: ConnectionState, error: HubError) -> None:
        if error.code not in _STATE_NEUTRAL_CODES:
            self._record_failure(state, error)
            return
        # No live client remains, but the failure count is untouched
        state.status = ConnectionStatus.DISCONNECTED
        state.connected_at = None
        state.error = error.message
        state.last_error = error.message

    def _record_failure(self, state: ConnectionState, error: HubError) -> None:
        state.status = ConnectionStatus.ERROR
        state.connected_at = None
        state.error = error.message
        state.last_error = error.message
        state.error_category = error.classification
        state.error_count += 1
        state.tools = []
        state.resources = []
        state.prompts = []

        slog = self._server_log(state.server_id)
        if slog:
            slog.failed(error, state.error_count)

    async def _drop_client(self, server_id: str) -> bool:
        """Remove the client from the active set, then close it."""
        client = self._clients.pop(server_id, None)
        if client is None:
            return False
        try:
            await asyncio.wait_for(client.close(), timeout=self.disconnect_timeout)
        except Exception as e:
            slog = self._server_log(server_id)
            if slog:
                slog.cleanup_failed(e)
        return True


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
