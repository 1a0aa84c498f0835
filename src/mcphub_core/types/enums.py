"""Shared enumerations for the MCP hub core."""

from enum import Enum


class LogLevel(str, Enum):
    """Log verbosity level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log output format."""

    COLORED = "colored"
    JSON = "json"


class TransportType(str, Enum):
    """MCP connection transport kind."""

    STDIO = "stdio"
    SSE = "sse"
    HTTP = "http"


class AuthType(str, Enum):
    """Credential scheme for remote transports."""

    NONE = "none"
    BEARER = "bearer"
    API_KEY = "apiKey"
    BASIC = "basic"
    OAUTH = "oauth"


class ConnectionStatus(str, Enum):
    """MCP server connection status."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class HealthStatus(str, Enum):
    """Result of the latest periodic health check."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"  # answered, but slower than 80% of the timeout
    OFFLINE = "offline"


class ProcessState(str, Enum):
    """Operating-system process state for stdio servers."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"


class InstallSource(str, Enum):
    """Where a server is installed from."""

    NPM = "npm"
    GITHUB = "github"
    LOCAL = "local"


class InstallStatus(str, Enum):
    """Installation status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class InstallStage(str, Enum):
    """Installation pipeline stage, in execution order."""

    VALIDATING = "validating"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    INSTALLING = "installing"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        """Position of the stage in the pipeline."""
        return list(InstallStage).index(self)


class CatalogSource(str, Enum):
    """Catalog entry origin."""

    NPM = "npm"
    GITHUB = "github"


class SortKey(str, Enum):
    """Catalog sort order."""

    RELEVANCE = "relevance"
    DOWNLOADS = "downloads"
    STARS = "stars"
    UPDATED = "updated"


class RateLimitStrategy(str, Enum):
    """Rate limiting algorithm."""

    SLIDING_WINDOW = "sliding-window"
    TOKEN_BUCKET = "token-bucket"
