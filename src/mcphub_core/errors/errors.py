"""Hub error types and matcher interfaces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error classification surfaced to callers."""

    CONFIGURATION = "CONFIGURATION"
    CONNECTION = "CONNECTION"
    AUTHENTICATION = "AUTHENTICATION"
    TOOL_EXECUTION = "TOOL_EXECUTION"
    PROCESS = "PROCESS"
    INSTALLATION = "INSTALLATION"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL"


_CLASSIFICATIONS = {
    ErrorCategory.CONFIGURATION: "ConfigurationError",
    ErrorCategory.CONNECTION: "ConnectionError",
    ErrorCategory.AUTHENTICATION: "AuthenticationError",
    ErrorCategory.TOOL_EXECUTION: "ToolExecutionError",
    ErrorCategory.PROCESS: "ProcessError",
    ErrorCategory.INSTALLATION: "InstallationError",
    ErrorCategory.NOT_FOUND: "NotFoundError",
    ErrorCategory.INTERNAL: "InternalError",
}


@dataclass
class HubError(Exception):
    """Structured error with context. Base exception for all hub errors."""

    # Identity
    code: str  # e.g., "AUTH_REJECTED"
    category: ErrorCategory

    # Messages
    message: str  # Human-readable summary
    detail: str | None = None  # Extended explanation
    suggestion: str | None = None  # Actionable fix

    # Context
    retryable: bool = False  # Is retry potentially useful?
    http_status: int = 500
    server_id: str | None = None
    tool_name: str | None = None
    stage: str | None = None  # Installation stage, for INSTALLATION errors

    # Error chain (max depth 3)
    cause: "HubError | None" = None

    # Metadata
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Set Exception message."""
        super().__init__(self.message)

    @property
    def classification(self) -> str:
        """Taxonomy name for the category, e.g. ``AuthenticationError``."""
        return _CLASSIFICATIONS[self.category]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for operation results.

        Returns:
            Dictionary representation of the error
        """
        return {
            "code": self.code,
            "category": self.category.value,
            "classification": self.classification,
            "message": self.message,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "retryable": self.retryable,
            "server_id": self.server_id,
            "tool_name": self.tool_name,
            "stage": self.stage,
            "timestamp": self.timestamp.isoformat(),
            "cause": self.cause.to_dict() if self.cause else None,
        }

    def with_context(
        self,
        server_id: str | None = None,
        tool_name: str | None = None,
        stage: str | None = None,
    ) -> "HubError":
        """Return copy with additional context.

        Args:
            server_id: Optional server identifier
            tool_name: Optional tool name
            stage: Optional installation stage

        Returns:
            New HubError instance with updated context
        """
        return HubError(
            code=self.code,
            category=self.category,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
            retryable=self.retryable,
            http_status=self.http_status,
            server_id=server_id or self.server_id,
            tool_name=tool_name or self.tool_name,
            stage=stage or self.stage,
            cause=self.cause,
            timestamp=self.timestamp,
        )


@dataclass
class ErrorTemplate:
    """Template for creating errors."""

    code: str
    category: ErrorCategory
    message_template: str  # "Server '{server_id}' rejected the credentials"
    detail_template: str | None = None
    suggestion_template: str | None = None
    default_retryable: bool = False
    default_http_status: int = 500


@dataclass
class MatchResult:
    """Result of matching an exception."""

    code: str
    context: dict[str, Any]
    retryable: bool | None = None  # None = use template default


class ErrorMatcher(ABC):
    """Base class for exception matchers."""

    @abstractmethod
    def matches(self, error: BaseException) -> bool:
        """Check if this matcher handles the error.

        Args:
            error: Exception to check

        Returns:
            True if this matcher can handle the error
        """

    @abstractmethod
    def extract(self, error: BaseException) -> MatchResult:
        """Extract hub error info from the exception.

        Args:
            error: Exception to extract from

        Returns:
            MatchResult with error code and context
        """
