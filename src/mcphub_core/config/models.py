"""Hub configuration data models."""

from dataclasses import dataclass, field

from mcphub_core.types import LogFormat, LogLevel, RateLimitStrategy


@dataclass
class ConnectionSettings:
    """Timeouts for protocol connections."""

    connect_timeout: float = 30.0  # initialize handshake
    discovery_timeout: float = 30.0  # tools/resources/prompts listing
    disconnect_timeout: float = 5.0


@dataclass
class ProcessSettings:
    """Process lifecycle settings."""

    grace_period: float = 10.0  # SIGTERM -> SIGKILL escalation
    restart_delay: float = 1.0
    output_lines: int = 200  # tail kept per process
    max_restart_attempts: int = 3  # restarts allowed between explicit starts


@dataclass
class InstallerSettings:
    """Installer settings."""

    install_dir: str = ".mcp-servers"
    stage_timeout: float = 300.0
    retention_seconds: float = 60.0  # keep terminal records for polling
    npm_command: str = "npm"
    git_command: str = "git"


@dataclass
class RegistrySettings:
    """Server catalog settings."""

    cache_ttl: float = 3600.0
    page_size: int = 20
    request_timeout: float = 10.0
    npm_enabled: bool = True
    npm_registry_url: str = "https://registry.npmjs.org"
    npm_query: str = "mcp server"
    npm_search_size: int = 50
    github_search_enabled: bool = False
    github_api_url: str = "https://api.github.com"
    github_token: str | None = None


@dataclass
class PoolSettings:
    """Pooled HTTP client settings for request/response transports."""

    max_connections: int = 10  # per server
    max_idle_time: float = 60.0
    max_connection_age: float = 300.0
    acquire_timeout: float = 30.0


@dataclass
class RateLimitSettings:
    """Outbound request rate limiting per server."""

    enabled: bool = True
    strategy: RateLimitStrategy = RateLimitStrategy.SLIDING_WINDOW
    max_requests: int = 100
    window_seconds: float = 60.0


@dataclass
class CleanupSettings:
    """Background resource cleanup."""

    interval_seconds: float = 300.0
    oauth_state_max_age: float = 3600.0
    oauth_state_path: str = "~/.mcphub/oauth-states.json"
    handle_signals: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_params: bool = True
    show_results: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=dict)


@dataclass
class HealthSettings:
    """Periodic health checks of connected servers."""

    enabled: bool = False
    check_interval: float = 30.0
    timeout: float = 5.0  # answers slower than 80% of this are degraded
    max_retries: int = 3
    retry_delay: float = 1.0  # doubled after every failed check


@dataclass
class HubConfig:
    """Complete hub configuration."""

    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    process: ProcessSettings = field(default_factory=ProcessSettings)
    installer: InstallerSettings = field(default_factory=InstallerSettings)
    registry: RegistrySettings = field(default_factory=RegistrySettings)
    pool: PoolSettings = field(default_factory=PoolSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    cleanup: CleanupSettings = field(default_factory=CleanupSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
