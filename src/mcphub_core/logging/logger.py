"""Hub logger - colored or JSON logging for connections, processes and installs."""

import json
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TextIO

from mcphub_core.logging.colors import (
    COMPONENT_COLORS,
    CYAN,
    LIGHT_BLUE,
    RED,
    RESET,
    YELLOW,
)
from mcphub_core.types import LogFormat, LogLevel

COMPONENTS = ("connection", "tool", "process", "install", "registry", "cleanup")


@dataclass
class LogConfig:
    """Logger configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.COLORED
    show_params: bool = True
    show_results: bool = True
    truncate_at: int = 200
    components: dict[str, bool] = field(default_factory=dict)
    output: TextIO = field(default=sys.stdout)

    def __post_init__(self) -> None:
        """Initialize default components if not provided."""
        if not self.components:
            self.components = dict.fromkeys(COMPONENTS, True)


class HubLogger:
    """Main logger facade. Creates scoped loggers for servers and installs."""

    def __init__(self, config: LogConfig | None = None):
        """Initialize logger with configuration.

        Args:
            config: Logger configuration (defaults to LogConfig())
        """
        self.config = config or LogConfig()
        self._level_order = {
            LogLevel.DEBUG: 0,
            LogLevel.INFO: 1,
            LogLevel.WARN: 2,
            LogLevel.ERROR: 3,
        }

    def server(self, server_id: str, name: str | None = None) -> "ServerLogger":
        """Get a logger scoped to one MCP server.

        Args:
            server_id: Server identifier
            name: Optional display name

        Returns:
            ServerLogger instance
        """
        return ServerLogger(self, server_id, name or server_id)

    def install(self, install_id: str, source: str) -> "InstallLogger":
        """Get a logger scoped to one installation run.

        Args:
            install_id: Installation identifier
            source: Install source (npm, github, local)

        Returns:
            InstallLogger instance
        """
        return InstallLogger(self, install_id, source)

    def configure(self, config: LogConfig) -> None:
        """Update configuration.

        Args:
            config: New logger configuration
        """
        self.config = config

    def _should_log(self, level: LogLevel) -> bool:
        return self._level_order.get(level, 0) >= self._level_order.get(self.config.level, 1)

    def _log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method.

        Args:
            level: Log level
            component: Component name (connection, tool, process, install, registry, cleanup)
            message: Log message
            context: Additional context data
        """
        if not self._should_log(level):
            return

        if not self.config.components.get(component, True):
            return

        if self.config.format == LogFormat.JSON:
            self._log_json(level, component, message, context)
        else:
            self._log_colored(level, component, message, context)

    def _log_json(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": level.value,
            "component": component,
            "message": message,
        }
        if context:
            log_entry.update(context)

        print(json.dumps(log_entry, default=str), file=self.config.output)

    def _log_colored(
        self,
        level: LogLevel,
        component: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        level_colors = {
            LogLevel.DEBUG: LIGHT_BLUE,
            LogLevel.INFO: CYAN,
            LogLevel.WARN: YELLOW,
            LogLevel.ERROR: RED,
        }

        color = level_colors.get(level, RESET)
        component_color = COMPONENT_COLORS.get(component, RESET)

        # Format: [COMPONENT] message
        output = f"{component_color}[{component.upper()}]{RESET} {color}{message}{RESET}"

        if context and self.config.show_params:
            context_str = str(context)
            if len(context_str) > self.config.truncate_at:
                context_str = context_str[: self.config.truncate_at] + "..."
            output += f" {LIGHT_BLUE}{context_str}{RESET}"

        print(output, file=self.config.output)


class ServerLogger:
    """Logger for connection and tool events of a single server."""

    def __init__(self, parent: HubLogger, server_id: str, name: str):
        """Initialize server logger.

        Args:
            parent: Parent HubLogger instance
            server_id: Server identifier
            name: Display name
        """
        self.parent = parent
        self.server_id = server_id
        self.name = name

    def _context(self, event: str, **extra: Any) -> dict[str, Any]:
        context = {"server_id": self.server_id, "event": event}
        context.update({k: v for k, v in extra.items() if v is not None})
        return context

    def connecting(self, transport: str) -> None:
        self.parent._log(
            LogLevel.INFO,
            "connection",
            f"Connecting to '{self.name}' ({transport})",
            self._context("connecting", transport=transport),
        )

    def connected(self, tools: int, resources: int, prompts: int, duration_ms: int) -> None:
        """Log successful capability discovery.

        Args:
            tools: Number of tools discovered
            resources: Number of resources discovered
            prompts: Number of prompts discovered
            duration_ms: Time from connect start to discovery end
        """
        message = (
            f"Connected to '{self.name}' "
            f"({tools} tools, {resources} resources, {prompts} prompts) ✓"
        )
        self.parent._log(
            LogLevel.INFO,
            "connection",
            message,
            self._context(
                "connected",
                tools=tools,
                resources=resources,
                prompts=prompts,
                duration_ms=duration_ms,
            ),
        )

    def failed(self, error: Exception, error_count: int) -> None:
        """Log a failed connection attempt.

        Args:
            error: Exception that caused the failure
            error_count: Failures recorded for this server so far
        """
        self.parent._log(
            LogLevel.ERROR,
            "connection",
            f"Connection to '{self.name}' failed: {error}",
            self._context(
                "connection_failed",
                error=str(error),
                error_type=type(error).__name__,
                error_count=error_count,
            ),
        )

    def disconnected(self) -> None:
        self.parent._log(
            LogLevel.INFO,
            "connection",
            f"Disconnected from '{self.name}'",
            self._context("disconnected"),
        )

    def cleanup_failed(self, error: Exception) -> None:
        self.parent._log(
            LogLevel.WARN,
            "connection",
            f"Cleanup of '{self.name}' failed: {error}",
            self._context("cleanup_failed", error=str(error)),
        )

    def tool_calling(self, tool_name: str, arguments: dict[str, Any] | None = None) -> None:
        """Log tool call start.

        Args:
            tool_name: Name of the tool being called
            arguments: Optional tool arguments
        """
        context = self._context("tool_calling", tool_name=tool_name)
        if arguments:
            context["arguments"] = arguments
        self.parent._log(LogLevel.INFO, "tool", f"Calling tool '{tool_name}'", context)

    def tool_result(self, tool_name: str, result: Any, duration_ms: int) -> None:
        """Log tool call result.

        Args:
            tool_name: Name of the tool
            result: Tool output
            duration_ms: Execution duration in milliseconds
        """
        context = self._context("tool_result", tool_name=tool_name, duration_ms=duration_ms)

        if self.parent.config.show_results:
            result_str = str(result)
            if len(result_str) > self.parent.config.truncate_at:
                result_str = result_str[: self.parent.config.truncate_at] + "..."
            context["result"] = result_str

        duration_s = duration_ms / 1000
        self.parent._log(
            LogLevel.INFO,
            "tool",
            f"Tool '{tool_name}' completed ({duration_s:.2f}s) ✓",
            context,
        )

    def tool_error(self, tool_name: str, error: str, duration_ms: int) -> None:
        duration_s = duration_ms / 1000
        self.parent._log(
            LogLevel.ERROR,
            "tool",
            f"Tool '{tool_name}' failed ({duration_s:.2f}s): {error}",
            self._context("tool_error", tool_name=tool_name, duration_ms=duration_ms, error=error),
        )


class InstallLogger:
    """Logger for installation pipeline events."""

    def __init__(self, parent: HubLogger, install_id: str, source: str):
        """Initialize install logger.

        Args:
            parent: Parent HubLogger instance
            install_id: Installation identifier
            source: Install source kind
        """
        self.parent = parent
        self.install_id = install_id
        self.source = source

    def _context(self, event: str, **extra: Any) -> dict[str, Any]:
        context = {"install_id": self.install_id, "source": self.source, "event": event}
        context.update({k: v for k, v in extra.items() if v is not None})
        return context

    def stage(self, stage: str, progress: int, message: str) -> None:
        self.parent._log(
            LogLevel.INFO,
            "install",
            f"[{stage}] {message} ({progress}%)",
            self._context("install_stage", stage=stage, progress=progress),
        )

    def command(self, args: list[str]) -> None:
        self.parent._log(
            LogLevel.DEBUG,
            "install",
            f"Running: {' '.join(args)}",
            self._context("install_command"),
        )

    def completed(self, install_path: str, duration_ms: int) -> None:
        duration_s = duration_ms / 1000
        self.parent._log(
            LogLevel.INFO,
            "install",
            f"Installation {self.install_id} completed ({duration_s:.2f}s) ✓",
            self._context("install_completed", install_path=install_path),
        )

    def failed(self, stage: str, error: Exception) -> None:
        """Log pipeline failure.

        Args:
            stage: Stage the failure occurred in
            error: Exception that caused failure
        """
        self.parent._log(
            LogLevel.ERROR,
            "install",
            f"Installation {self.install_id} failed during {stage}: {error}",
            self._context(
                "install_failed",
                stage=stage,
                error=str(error),
                error_type=type(error).__name__,
            ),
        )

    def cancelled(self, stage: str) -> None:
        self.parent._log(
            LogLevel.WARN,
            "install",
            f"Installation {self.install_id} cancelled during {stage}",
            self._context("install_cancelled", stage=stage),
        )
