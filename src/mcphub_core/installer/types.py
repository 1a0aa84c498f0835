"""Installation sources, validation results and progress records."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar

from mcphub_core.config.servers import StdioServerConfig
from mcphub_core.errors import HubError
from mcphub_core.types import InstallSource, InstallStage, InstallStatus, ValidationResult

# Progress reported on entering each stage
STAGE_PROGRESS: dict[InstallStage, int] = {
    InstallStage.VALIDATING: 0,
    InstallStage.DOWNLOADING: 10,
    InstallStage.EXTRACTING: 40,
    InstallStage.INSTALLING: 60,
    InstallStage.COMPLETED: 100,
}


@dataclass
class NpmInstallConfig:
    """Install a package published to an npm registry."""

    source: ClassVar[InstallSource] = InstallSource.NPM

    package_name: str
    version: str | None = None
    registry: str | None = None  # alternative registry URL

    @property
    def package_spec(self) -> str:
        return f"{self.package_name}@{self.version}" if self.version else self.package_name


@dataclass
class GitHubInstallConfig:
    """Install from a GitHub repository (``owner/repo`` or a github.com URL)."""

    source: ClassVar[InstallSource] = InstallSource.GITHUB

    repository: str
    branch: str | None = None
    tag: str | None = None
    commit: str | None = None
    sub_path: str | None = None  # server lives in a subdirectory


@dataclass
class LocalInstallConfig:
    """Register a server that already exists on disk."""

    source: ClassVar[InstallSource] = InstallSource.LOCAL

    path: str


InstallConfig = NpmInstallConfig | GitHubInstallConfig | LocalInstallConfig


@dataclass
class DependencyInfo:
    """External tool an installation needs."""

    name: str
    required: bool
    installed: bool

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "required": self.required, "installed": self.installed}


@dataclass
class InstallValidation(ValidationResult):
    """Static installation checks plus size and duration estimates."""

    dependencies: list[DependencyInfo] = field(default_factory=list)
    estimated_size: int | None = None  # bytes
    estimated_time: int | None = None  # seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "dependencies": [dep.to_dict() for dep in self.dependencies],
            "estimated_size": self.estimated_size,
            "estimated_time": self.estimated_time,
        }


@dataclass
class InstallationProgress:
    """Progress record of one installation run.

    ``stage`` only moves forward and ``progress`` never decreases. ``logs``
    is append-only with at least one entry per stage transition.
    """

    install_id: str
    source: InstallSource
    name: str
    description: str = ""
    status: InstallStatus = InstallStatus.IN_PROGRESS
    stage: InstallStage = InstallStage.VALIDATING
    progress: int = 0
    message: str = ""
    logs: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    error: HubError | None = None
    install_path: str | None = None
    server_config: StdioServerConfig | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != InstallStatus.IN_PROGRESS

    def log(self, line: str) -> None:
        self.logs.append(line)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        config = self.server_config
        return {
            "install_id": self.install_id,
            "source": self.source.value,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "stage": self.stage.value,
            "progress": self.progress,
            "message": self.message,
            "logs": list(self.logs),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "error": (
                {
                    "code": self.error.code,
                    "category": self.error.category.value,
                    "message": self.error.message,
                    "stage": self.error.stage,
                }
                if self.error
                else None
            ),
            "install_path": self.install_path,
            "server_config": (
                {
                    "id": config.id,
                    "name": config.name,
                    "description": config.description,
                    "transport_type": config.transport_type.value,
                    "command": config.command,
                    "args": list(config.args),
                    "cwd": config.cwd,
                }
                if config
                else None
            ),
        }
