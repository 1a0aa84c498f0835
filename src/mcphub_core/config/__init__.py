"""Hub configuration - settings loading and server definitions."""

from .loader import (
    ConfigLoader,
    deep_merge,
    get_config_loader,
    load_config,
    resolve_env_vars,
)
from .models import (
    CleanupSettings,
    ConnectionSettings,
    HealthSettings,
    HubConfig,
    InstallerSettings,
    LoggingConfig,
    PoolSettings,
    ProcessSettings,
    RateLimitSettings,
    RegistrySettings,
)
from .servers import (
    AuthConfig,
    HTTPServerConfig,
    OAuthClientConfig,
    RemoteServerConfig,
    ServerConfig,
    SSEServerConfig,
    StdioServerConfig,
    parse_server_config,
    validate_server_config,
)

__all__ = [
    # Loader
    "ConfigLoader",
    "get_config_loader",
    "load_config",
    "resolve_env_vars",
    "deep_merge",
    # Settings
    "HubConfig",
    "ConnectionSettings",
    "ProcessSettings",
    "InstallerSettings",
    "RegistrySettings",
    "PoolSettings",
    "RateLimitSettings",
    "CleanupSettings",
    "HealthSettings",
    "LoggingConfig",
    # Server definitions
    "ServerConfig",
    "RemoteServerConfig",
    "StdioServerConfig",
    "SSEServerConfig",
    "HTTPServerConfig",
    "AuthConfig",
    "OAuthClientConfig",
    "parse_server_config",
    "validate_server_config",
]
