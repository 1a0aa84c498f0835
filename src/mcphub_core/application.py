"""Hub Application - wires the connection core and exposes its operations.

Every public operation returns an OperationResult instead of raising, so
callers (a web layer, a CLI, a desktop shell) get one uniform envelope:
success flag, display message, payload, and on failure an error with its
code and classification. Tracebacks never leave this module.
"""

import sys
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any, TextIO

import httpx

from mcphub_core.auth import OAuthStateStore, RateLimiter, apply_credential
from mcphub_core.catalog import (
    CatalogProvider,
    CuratedSource,
    GitHubSearchSource,
    NpmSearchSource,
    RegistryCache,
    SearchFilters,
)
from mcphub_core.cleanup import ResourceCleanup
from mcphub_core.config import (
    ConfigLoader,
    HubConfig,
    ServerConfig,
    StdioServerConfig,
    parse_server_config,
)
from mcphub_core.errors import HubError, classify_exception, create_error
from mcphub_core.installer import CommandRunner, InstallConfig, Installer
from mcphub_core.lifecycle import ProcessManager
from mcphub_core.logging import HubLogger, LogConfig
from mcphub_core.mcp import ConnectionPool, ConnectionRegistry, HealthMonitor, TransportFactory
from mcphub_core.mcp.registry import ClientFactory
from mcphub_core.mcp.types import TestConnectionResult
from mcphub_core.types import CatalogSource, ConnectionStatus, LogLevel

ServerConfigInput = ServerConfig | dict[str, Any]


@dataclass
class OperationResult:
    """Uniform outcome of a hub operation."""

    success: bool
    message: str
    data: Any = None
    error: dict[str, Any] | None = None  # {code, category, classification, message}

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: HubError, data: Any = None) -> "OperationResult":
        return cls(
            success=False,
            message=error.message,
            data=data,
            error={
                "code": error.code,
                "category": error.category.value,
                "classification": error.classification,
                "message": error.message,
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "data": self.data,
            "error": self.error,
        }


class HubApplication:
    """
    Hub Application orchestrator.

    Initializes and wires all components together:

    1. Config loading
    2. Logger setup
    3. Pooled HTTP clients and rate limiting
    4. Transport factory, connection registry and health monitor
    5. Process manager
    6. Installer
    7. Catalog cache
    8. Resource cleanup (interval loop and signal hooks)
    """

    def __init__(
        self,
        config: HubConfig | None = None,
        config_path: str | None = None,
        log_output: TextIO | None = None,
        handle_signals: bool | None = None,
        client_factory: ClientFactory | None = None,
        http_client_factory: Callable[[], httpx.AsyncClient] | None = None,
        command_runner: CommandRunner | None = None,
        catalog_sources: Sequence[CatalogProvider] | None = None,
    ):
        """Initialize application.

        Args:
            config: Hub configuration (loaded from file when None)
            config_path: Path to config file (optional)
            log_output: Output stream for logs (default: sys.stdout)
            handle_signals: Install SIGINT/SIGTERM hooks (default: from config)
            client_factory: Replaces the transport factory (tests, embedding)
            http_client_factory: Builds pooled httpx clients
            command_runner: Runs installer commands
            catalog_sources: Replaces the configured catalog sources
        """
        self._config_path = config_path
        self._log_output = log_output or sys.stdout
        self._handle_signals = handle_signals
        self._client_factory = client_factory
        self._http_client_factory = http_client_factory
        self._command_runner = command_runner
        self._catalog_sources = catalog_sources
        self._initialized = False

        self.config: HubConfig | None = config
        self.logger: HubLogger | None = None
        self.pool: ConnectionPool | None = None
        self.rate_limiter: RateLimiter | None = None
        self.transport_factory: TransportFactory | None = None
        self.connections: ConnectionRegistry | None = None
        self.health: HealthMonitor | None = None
        self.processes: ProcessManager | None = None
        self.installer: Installer | None = None
        self.catalog: RegistryCache | None = None
        self.oauth_states: OAuthStateStore | None = None
        self.cleanup: ResourceCleanup | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize all components and start background cleanup."""
        if self._initialized:
            return

        # 1. Config
        if self.config is None:
            self.config = ConfigLoader().load(self._config_path)
        config = self.config

        # 2. Logger
        self.logger = HubLogger(
            LogConfig(
                level=config.logging.level,
                format=config.logging.format,
                show_params=config.logging.show_params,
                show_results=config.logging.show_results,
                truncate_at=config.logging.truncate_at,
                components=dict(config.logging.components),
                output=self._log_output,
            )
        )

        # 3. Pool and rate limiting
        self.pool = ConnectionPool(
            max_connections=config.pool.max_connections,
            max_idle_time=config.pool.max_idle_time,
            max_connection_age=config.pool.max_connection_age,
            acquire_timeout=config.pool.acquire_timeout,
            client_factory=self._http_client_factory,
        )
        if config.rate_limit.enabled:
            self.rate_limiter = RateLimiter(
                max_requests=config.rate_limit.max_requests,
                window_seconds=config.rate_limit.window_seconds,
                strategy=config.rate_limit.strategy,
            )

        # 4. Transports and connection registry
        self.transport_factory = TransportFactory(
            pool=self.pool,
            rate_limiter=self.rate_limiter,
            connect_timeout=config.connection.connect_timeout,
        )
        self.connections = ConnectionRegistry(
            self._client_factory or self.transport_factory,
            logger=self.logger,
            discovery_timeout=config.connection.discovery_timeout,
            disconnect_timeout=config.connection.disconnect_timeout,
        )
        self.health = HealthMonitor(
            self.connections,
            check_interval=config.health.check_interval,
            timeout=config.health.timeout,
            max_retries=config.health.max_retries,
            retry_delay=config.health.retry_delay,
        )

        # 5. Processes
        self.processes = ProcessManager(
            logger=self.logger,
            grace_period=config.process.grace_period,
            restart_delay=config.process.restart_delay,
            output_lines=config.process.output_lines,
            max_restart_attempts=config.process.max_restart_attempts,
        )

        # 6. Installer
        self.installer = Installer(
            install_dir=config.installer.install_dir,
            logger=self.logger,
            runner=self._command_runner,
            stage_timeout=config.installer.stage_timeout,
            retention_seconds=config.installer.retention_seconds,
            npm_command=config.installer.npm_command,
            git_command=config.installer.git_command,
        )

        # 7. Catalog
        self.catalog = RegistryCache(
            self._catalog_sources or self._build_catalog_sources(config),
            ttl=config.registry.cache_ttl,
            page_size=config.registry.page_size,
            logger=self.logger,
        )

        # 8. Cleanup
        self.oauth_states = OAuthStateStore(config.cleanup.oauth_state_path)
        self.cleanup = ResourceCleanup(
            pool=self.pool,
            rate_limiter=self.rate_limiter,
            oauth_store=self.oauth_states,
            interval_seconds=config.cleanup.interval_seconds,
            oauth_state_max_age=config.cleanup.oauth_state_max_age,
        )
        if config.cleanup.interval_seconds > 0:
            await self.cleanup.start()
        handle_signals = self._handle_signals
        if handle_signals is None:
            handle_signals = config.cleanup.handle_signals
        if handle_signals:
            self.cleanup.install_signal_handlers(on_shutdown=self.shutdown)

        self._initialized = True
        self._log(LogLevel.INFO, "Hub initialized")

    async def shutdown(self) -> None:
        """Shutdown all components."""
        if not self._initialized:
            return
        self._initialized = False

        if self.cleanup:
            await self.cleanup.stop()
            self.cleanup.remove_signal_handlers()
        if self.health:
            await self.health.stop_all()
        if self.connections:
            await self.connections.disconnect_all()
        if self.processes:
            await self.processes.stop_all()
        if self.installer:
            await self.installer.close()
        if self.cleanup:
            await self.cleanup.run_once("shutdown")
        if self.pool:
            await self.pool.close_all()
        self._log(LogLevel.INFO, "Hub shut down")

    # Connections

    async def connect(
        self,
        config: ServerConfigInput,
        credential: str | None = None,
    ) -> OperationResult:
        """Connect to a server and discover its capabilities."""
        server_id = config.get("id") if isinstance(config, dict) else config.id
        try:
            connections = self._require(self.connections)
            server = apply_credential(parse_server_config(config), credential)
            state = await connections.connect(server)
        except Exception as e:
            state = self.connections.get_state(server_id) if self.connections else None
            return self._failure(e, data=state.to_dict() if state else None)
        if self.config and self.config.health.enabled and self.health:
            self.health.start_monitoring(server)
        return OperationResult.ok(f"Connected to '{server.name}'", state.to_dict())

    async def disconnect(self, server_id: str) -> OperationResult:
        try:
            await self._require(self.health).stop_monitoring(server_id)
            await self._require(self.connections).disconnect_client(server_id)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(f"Disconnected from '{server_id}'")

    async def reconnect(self, server_id: str) -> OperationResult:
        try:
            state = await self._require(self.connections).reconnect(server_id)
        except Exception as e:
            state = self.connections.get_state(server_id) if self.connections else None
            return self._failure(e, data=state.to_dict() if state else None)
        return OperationResult.ok(f"Reconnected to '{server_id}'", state.to_dict())

    async def test_connection(
        self,
        config: ServerConfigInput,
        credential: str | None = None,
    ) -> OperationResult:
        """Connect under a throwaway id, capture capabilities, disconnect.

        The throwaway connection is closed on every path.
        """
        test_id = f"test-{uuid.uuid4().hex[:12]}"
        if isinstance(config, dict) and not config.get("id"):
            config = {**config, "id": test_id}
        try:
            connections = self._require(self.connections)
            probe = replace(apply_credential(parse_server_config(config), credential), id=test_id)
        except Exception as e:
            return self._failure(e)

        start_time = time.monotonic()
        error: HubError | None = None
        try:
            client = await connections.get_or_create_client(probe)
            state = await connections.get_connection_state(test_id, probe.name, client)
        except Exception as e:
            error = self._classify(e, server_id=test_id)
            state = connections.get_state(test_id)
        finally:
            await connections.disconnect_client(test_id)

        latency_ms = int((time.monotonic() - start_time) * 1000)
        connected = state is not None and state.status == ConnectionStatus.CONNECTED
        result = TestConnectionResult(
            success=connected,
            message=(
                "Successfully connected to server" if connected else "Failed to connect to server"
            ),
            latency_ms=latency_ms,
            tools=list(state.tools) if connected and state else [],
            resources=list(state.resources) if connected and state else [],
            prompts=list(state.prompts) if connected and state else [],
            error=None if connected else (state.error if state else None),
        )
        if connected:
            return OperationResult.ok(result.message, result.to_dict())

        if error is None:
            error = create_error(
                "CONNECTION_FAILED",
                server_id=test_id,
                detail=result.error or "discovery failed",
            )
        failure = OperationResult.fail(error, data=result.to_dict())
        failure.message = result.message
        return failure

    async def execute_tool(
        self,
        server_id: str,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
    ) -> OperationResult:
        try:
            result = await self._require(self.connections).call_tool(
                server_id, tool_name, arguments
            )
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(f"Tool '{tool_name}' completed", result.to_dict())

    def list_connections(self) -> OperationResult:
        try:
            states = self._require(self.connections).list_states()
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"{len(states)} connection(s)", [state.to_dict() for state in states]
        )

    def begin_authorization(self, config: ServerConfigInput) -> OperationResult:
        """Start an OAuth handshake for a remote server.

        The code-for-token exchange happens outside the hub; the resulting
        access token is passed to ``connect`` as the credential.
        """
        try:
            store = self._require(self.oauth_states)
            server = parse_server_config(config)
            client = None if isinstance(server, StdioServerConfig) else server.auth.oauth
            if not client:
                raise create_error(
                    "CONFIG_INVALID",
                    detail=f"Server '{server.id}' has no OAuth client configuration",
                )
            url, state = store.begin(server.id, client)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            "Authorization started", {"authorization_url": url, "state": state}
        )

    # Health

    def get_health(self, server_id: str) -> OperationResult:
        try:
            health = self._require(self.health).get_health(server_id)
            if health is None:
                raise create_error("SERVER_NOT_FOUND", server_id=server_id)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"Server '{server_id}' is {health.status.value}", health.to_dict()
        )

    def list_health(self) -> OperationResult:
        try:
            records = self._require(self.health).get_all_health()
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"{len(records)} monitored server(s)", [health.to_dict() for health in records]
        )

    async def check_health(self, server_id: str) -> OperationResult:
        """Run a health check now instead of waiting for the next interval."""
        try:
            health = await self._require(self.health).check_server(server_id)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"Server '{server_id}' is {health.status.value}", health.to_dict()
        )

    # Processes

    async def start_process(self, server_id: str, config: ServerConfigInput) -> OperationResult:
        try:
            processes = self._require(self.processes)
            server = parse_server_config(config)
            if not isinstance(server, StdioServerConfig):
                raise create_error(
                    "CONFIG_INVALID",
                    detail=f"Server '{server_id}' does not use the stdio transport",
                )
            record = await processes.start_server(server_id, server)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(f"Process for '{server_id}' started", record.to_dict())

    async def stop_process(self, server_id: str, force: bool = False) -> OperationResult:
        try:
            processes = self._require(self.processes)
            await processes.stop_server(server_id, force=force)
        except Exception as e:
            return self._failure(e)
        record = processes.get_process_state(server_id)
        return OperationResult.ok(
            f"Process for '{server_id}' stopped", record.to_dict() if record else None
        )

    async def restart_process(
        self,
        server_id: str,
        config: ServerConfigInput | None = None,
    ) -> OperationResult:
        try:
            processes = self._require(self.processes)
            server = parse_server_config(config) if config is not None else None
            if server is not None and not isinstance(server, StdioServerConfig):
                raise create_error(
                    "CONFIG_INVALID",
                    detail=f"Server '{server_id}' does not use the stdio transport",
                )
            record = await processes.restart_server(server_id, server)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(f"Process for '{server_id}' restarted", record.to_dict())

    def list_processes(self) -> OperationResult:
        try:
            records = self._require(self.processes).get_all_processes()
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"{len(records)} process(es)", [record.to_dict() for record in records]
        )

    def get_process_status(self, server_id: str) -> OperationResult:
        try:
            record = self._require(self.processes).get_process_state(server_id)
            if record is None:
                raise create_error("PROCESS_NOT_FOUND", server_id=server_id)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"Process for '{server_id}' is {record.state.value}", record.to_dict()
        )

    # Installation

    def validate_install(self, config: dict[str, Any] | InstallConfig) -> OperationResult:
        try:
            validation = self._require(self.installer).validate_installation(config)
        except Exception as e:
            return self._failure(e)
        message = "Validation passed" if validation.valid else "Validation failed"
        return OperationResult(
            success=validation.valid, message=message, data=validation.to_dict()
        )

    async def install(
        self,
        config: dict[str, Any] | InstallConfig,
        name: str,
        description: str = "",
    ) -> OperationResult:
        try:
            record = await self._require(self.installer).install_server(config, name, description)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"Installation of '{name}' started",
            {"install_id": record.install_id, "progress": record.to_dict()},
        )

    def get_install_progress(self, install_id: str) -> OperationResult:
        try:
            record = self._require(self.installer).get_installation_progress(install_id)
            if record is None:
                raise create_error("INSTALL_NOT_FOUND", install_id=install_id)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(record.message, record.to_dict())

    def cancel_install(self, install_id: str) -> OperationResult:
        try:
            cancelled = self._require(self.installer).cancel_installation(install_id)
        except Exception as e:
            return self._failure(e)
        message = "Installation cancelled" if cancelled else "Nothing to cancel"
        return OperationResult.ok(message, cancelled)

    # Catalog

    async def search_catalog(
        self,
        filters: SearchFilters | dict[str, Any] | None = None,
    ) -> OperationResult:
        try:
            catalog = self._require(self.catalog)
            if not isinstance(filters, SearchFilters):
                filters = SearchFilters.from_dict(filters)
            result = await catalog.search_registry(filters)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(f"{result.total} server(s) found", result.to_dict())

    async def get_catalog_entry(self, entry_id: str) -> OperationResult:
        try:
            entry = await self._require(self.catalog).get_server_by_id(entry_id)
            if entry is None:
                raise create_error("CATALOG_ENTRY_NOT_FOUND", entry_id=entry_id)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(entry.name, entry.to_dict())

    async def list_categories(self) -> OperationResult:
        try:
            categories = await self._require(self.catalog).get_categories()
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(f"{len(categories)} categories", categories)

    async def list_popular(
        self,
        limit: int = 10,
        source: CatalogSource | str | None = None,
    ) -> OperationResult:
        try:
            catalog = self._require(self.catalog)
            if isinstance(source, str):
                source = SearchFilters.from_dict({"source": source}).source
            entries = await catalog.get_popular_servers(limit=limit, source=source)
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(
            f"{len(entries)} popular server(s)", [entry.to_dict() for entry in entries]
        )

    async def refresh_catalog(self) -> OperationResult:
        try:
            count = await self._require(self.catalog).refresh_cache()
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok(f"Catalog refreshed with {count} entries", {"total": count})

    # Maintenance

    async def run_cleanup(self) -> OperationResult:
        try:
            report = await self._require(self.cleanup).run_once("manual")
        except Exception as e:
            return self._failure(e)
        return OperationResult.ok("Cleanup complete", report.to_dict())

    def _build_catalog_sources(self, config: HubConfig) -> list[CatalogProvider]:
        registry = config.registry
        sources: list[CatalogProvider] = [CuratedSource()]
        if registry.npm_enabled:
            sources.append(
                NpmSearchSource(
                    registry_url=registry.npm_registry_url,
                    query=registry.npm_query,
                    size=registry.npm_search_size,
                    timeout=registry.request_timeout,
                )
            )
        if registry.github_search_enabled:
            sources.append(
                GitHubSearchSource(
                    api_url=registry.github_api_url,
                    token=registry.github_token,
                    timeout=registry.request_timeout,
                )
            )
        return sources

    def _require(self, component: Any) -> Any:
        if component is None or not self._initialized:
            raise create_error(
                "INTERNAL_ERROR",
                detail="Application not initialized",
                error_type="RuntimeError",
            )
        return component

    def _classify(self, error: Exception, server_id: str | None = None) -> HubError:
        if isinstance(error, HubError):
            return error
        return classify_exception(error, server_id=server_id, default_code="INTERNAL_ERROR")

    def _failure(self, error: Exception, data: Any = None) -> OperationResult:
        hub_error = self._classify(error)
        if hub_error.code == "INTERNAL_ERROR":
            self._log(
                LogLevel.ERROR,
                f"Operation failed: {hub_error.message}",
                error_type=type(error).__name__,
            )
        return OperationResult.fail(hub_error, data=data)

    def _log(self, level: LogLevel, message: str, **context: Any) -> None:
        if self.logger:
            self.logger._log(level, "connection", message, context)
