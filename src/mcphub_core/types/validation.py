"""Shared validation types for the MCP hub core."""

from dataclasses import dataclass, field

from mcphub_core.errors.errors import ErrorCategory


@dataclass
class ValidationIssue:
    """Single validation issue (error or warning).

    Used by:
    - ConfigLoader (hub config validation)
    - validate_server_config (server definitions)
    - Installer.validate_installation (install sources)
    """

    path: str  # e.g., "url" or "installer.stage_timeout"
    message: str  # Human-readable description
    severity: str = "error"  # "error" | "warning"
    category: ErrorCategory = ErrorCategory.CONFIGURATION

    def to_dict(self) -> dict[str, str]:
        return {
            "path": self.path,
            "message": self.message,
            "severity": self.severity,
            "category": self.category.value,
        }


@dataclass
class ValidationResult:
    """Result of validation.

    Used by:
    - ConfigLoader.validate()
    - validate_server_config()
    - Installer.validate_installation() (via InstallValidation)
    """

    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Ensure valid is False if there are errors."""
        if self.errors:
            self.valid = False

    def error_messages(self) -> list[str]:
        """Flatten errors into display strings."""
        return [
            f"{issue.path}: {issue.message}" if issue.path else issue.message
            for issue in self.errors
        ]
