"""Error registry for creating errors from templates."""

from typing import Any

from .errors import ErrorCategory, ErrorTemplate, HubError


class _TemplateContext(dict[str, Any]):
    """Context mapping that leaves unknown placeholders readable."""

    def __missing__(self, key: str) -> str:
        return "unknown"


class ErrorRegistry:
    """Registry of error templates. Creates errors from templates + context."""

    def __init__(self) -> None:
        """Initialize error registry with built-in templates."""
        self._templates: dict[str, ErrorTemplate] = {}
        self._load_builtin_templates()

    def get_template(self, code: str) -> ErrorTemplate | None:
        """Get template by error code.

        Args:
            code: Error code to look up

        Returns:
            ErrorTemplate if found, None otherwise
        """
        return self._templates.get(code)

    def register(self, template: ErrorTemplate) -> None:
        """Add or replace a template."""
        self._templates[template.code] = template

    def list_codes(self) -> list[str]:
        """List all registered error codes.

        Returns:
            List of error codes
        """
        return list(self._templates.keys())

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        cause: HubError | None = None,
    ) -> HubError:
        """Create error instance from template + context.

        Args:
            code: Error code
            context: Context variables for template interpolation
            cause: Optional cause error

        Returns:
            HubError instance

        Raises:
            ValueError: If error code not found
        """
        template = self.get_template(code)
        if not template:
            msg = f"Unknown error code: {code}"
            raise ValueError(msg)

        context = context or {}

        message = self._interpolate(template.message_template, context)
        detail = self._interpolate(template.detail_template, context)
        suggestion = self._interpolate(template.suggestion_template, context)

        if message is None:
            message = f"Error {code}"

        return HubError(
            code=template.code,
            category=template.category,
            message=message,
            detail=detail,
            suggestion=suggestion,
            retryable=template.default_retryable,
            http_status=template.default_http_status,
            server_id=context.get("server_id"),
            tool_name=context.get("tool_name"),
            stage=context.get("stage"),
            cause=cause,
        )

    def _interpolate(
        self,
        template: str | None,
        context: dict[str, Any],
    ) -> str | None:
        """Safe string interpolation.

        Args:
            template: Template string with {var} placeholders
            context: Context variables

        Returns:
            Interpolated string or None if template is None
        """
        if template is None:
            return None
        return template.format_map(_TemplateContext(context))

    def _load_builtin_templates(self) -> None:
        """Load hardcoded built-in templates."""
        # CONFIGURATION Errors
        self.register(
            ErrorTemplate(
                code="CONFIG_INVALID",
                category=ErrorCategory.CONFIGURATION,
                message_template="Invalid configuration: {detail}",
                detail_template="{detail}",
                suggestion_template="Fix the configuration and try again",
                default_http_status=400,
            )
        )
        self.register(
            ErrorTemplate(
                code="CONFIG_MISSING_FIELD",
                category=ErrorCategory.CONFIGURATION,
                message_template="Missing required field '{field}'",
                detail_template="The '{field}' field is required for this configuration",
                suggestion_template="Provide a value for '{field}'",
                default_http_status=400,
            )
        )

        # CONNECTION Errors
        self.register(
            ErrorTemplate(
                code="CONNECTION_FAILED",
                category=ErrorCategory.CONNECTION,
                message_template="Failed to connect to server '{server_id}': {detail}",
                detail_template="{detail}",
                suggestion_template="Check that the server is running and reachable",
                default_retryable=True,
                default_http_status=502,
            )
        )
        self.register(
            ErrorTemplate(
                code="CONNECTION_REFUSED",
                category=ErrorCategory.CONNECTION,
                message_template="Connection to server '{server_id}' was refused",
                detail_template="{detail}",
                suggestion_template="Check the server URL and that the server is listening",
                default_retryable=True,
                default_http_status=502,
            )
        )
        self.register(
            ErrorTemplate(
                code="CONNECTION_TIMEOUT",
                category=ErrorCategory.CONNECTION,
                message_template=(
                    "Connection to server '{server_id}' timed out after {timeout_seconds}s"
                ),
                detail_template="The server did not complete the handshake in time",
                suggestion_template="Increase the timeout or check if the server is stuck",
                default_retryable=True,
                default_http_status=504,
            )
        )
        self.register(
            ErrorTemplate(
                code="SPAWN_FAILED",
                category=ErrorCategory.CONNECTION,
                message_template="Could not start server '{server_id}': {detail}",
                detail_template="{detail}",
                suggestion_template="Check that the command exists and is executable",
                default_http_status=502,
            )
        )
        self.register(
            ErrorTemplate(
                code="PROTOCOL_ERROR",
                category=ErrorCategory.CONNECTION,
                message_template="Server '{server_id}' returned a protocol error: {detail}",
                detail_template="{detail}",
                suggestion_template="Check that the endpoint speaks MCP over the chosen transport",
                default_http_status=502,
            )
        )
        self.register(
            ErrorTemplate(
                code="RATE_LIMITED",
                category=ErrorCategory.CONNECTION,
                message_template=(
                    "Rate limit exceeded for server '{server_id}', retry in {retry_after}s"
                ),
                default_retryable=True,
                default_http_status=429,
            )
        )

        # AUTHENTICATION Errors
        self.register(
            ErrorTemplate(
                code="AUTH_REJECTED",
                category=ErrorCategory.AUTHENTICATION,
                message_template="Server '{server_id}' rejected the supplied credentials",
                detail_template="{detail}",
                suggestion_template="Re-authenticate or update the credentials for this server",
                default_http_status=401,
            )
        )

        # TOOL_EXECUTION Errors
        self.register(
            ErrorTemplate(
                code="TOOL_FAILED",
                category=ErrorCategory.TOOL_EXECUTION,
                message_template="{message}",
                detail_template="Tool '{tool_name}' reported an error",
                suggestion_template="Check the tool arguments and the server logs",
                default_http_status=502,
            )
        )

        # PROCESS Errors
        self.register(
            ErrorTemplate(
                code="PROCESS_FAILED",
                category=ErrorCategory.PROCESS,
                message_template="Process for server '{server_id}' failed: {detail}",
                detail_template="{detail}",
                suggestion_template="Check the command, arguments and environment",
                default_http_status=500,
            )
        )
        self.register(
            ErrorTemplate(
                code="PROCESS_STOP_FAILED",
                category=ErrorCategory.PROCESS,
                message_template="Could not stop process for server '{server_id}': {detail}",
                detail_template="{detail}",
                default_http_status=500,
            )
        )
        self.register(
            ErrorTemplate(
                code="RESTART_LIMIT_EXCEEDED",
                category=ErrorCategory.PROCESS,
                message_template=(
                    "Maximum restart attempts ({max_attempts}) exceeded for server '{server_id}'"
                ),
                suggestion_template="Stop the server and start it again once the cause is fixed",
                default_http_status=409,
            )
        )

        # INSTALLATION Errors
        self.register(
            ErrorTemplate(
                code="INSTALL_FAILED",
                category=ErrorCategory.INSTALLATION,
                message_template="Installation failed during {stage}: {detail}",
                detail_template="{detail}",
                suggestion_template="Check the installation logs for details",
                default_http_status=500,
            )
        )
        self.register(
            ErrorTemplate(
                code="INSTALL_TIMEOUT",
                category=ErrorCategory.INSTALLATION,
                message_template="Installation stage '{stage}' timed out after {timeout_seconds}s",
                detail_template="The command '{command}' did not finish in time",
                suggestion_template="Check network access or raise installer.stage_timeout",
                default_retryable=True,
                default_http_status=504,
            )
        )

        # NOT_FOUND Errors
        self.register(
            ErrorTemplate(
                code="SERVER_NOT_FOUND",
                category=ErrorCategory.NOT_FOUND,
                message_template="No active connection for server '{server_id}'",
                suggestion_template="Connect to the server first",
                default_http_status=404,
            )
        )
        self.register(
            ErrorTemplate(
                code="PROCESS_NOT_FOUND",
                category=ErrorCategory.NOT_FOUND,
                message_template="No process recorded for server '{server_id}'",
                default_http_status=404,
            )
        )
        self.register(
            ErrorTemplate(
                code="INSTALL_NOT_FOUND",
                category=ErrorCategory.NOT_FOUND,
                message_template="Installation '{install_id}' not found",
                default_http_status=404,
            )
        )
        self.register(
            ErrorTemplate(
                code="CATALOG_ENTRY_NOT_FOUND",
                category=ErrorCategory.NOT_FOUND,
                message_template="Catalog entry '{entry_id}' not found",
                default_http_status=404,
            )
        )

        # INTERNAL Errors
        self.register(
            ErrorTemplate(
                code="INTERNAL_ERROR",
                category=ErrorCategory.INTERNAL,
                message_template="Internal error: {detail}",
                detail_template="An unexpected {error_type} was raised",
                default_http_status=500,
            )
        )
