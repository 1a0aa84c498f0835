"""Shared types for the MCP hub core.

Import from here rather than submodules:
    from mcphub_core.types import TransportType, ValidationResult
"""

from .enums import (
    AuthType,
    CatalogSource,
    ConnectionStatus,
    HealthStatus,
    InstallSource,
    InstallStage,
    InstallStatus,
    LogFormat,
    LogLevel,
    ProcessState,
    RateLimitStrategy,
    SortKey,
    TransportType,
)
from .validation import ValidationIssue, ValidationResult

__all__ = [
    # Enums
    "LogLevel",
    "LogFormat",
    "TransportType",
    "AuthType",
    "ConnectionStatus",
    "HealthStatus",
    "ProcessState",
    "InstallSource",
    "InstallStatus",
    "InstallStage",
    "CatalogSource",
    "SortKey",
    "RateLimitStrategy",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
