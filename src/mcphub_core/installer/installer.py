"""Installer - multi-stage installation of servers from npm, GitHub or disk.

Each installation runs as a background task. Callers poll the progress
record; cancellation is cooperative and checked at every stage boundary.
"""

import asyncio
import json
import re
import shutil
import tarfile
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from mcphub_core.config.servers import StdioServerConfig
from mcphub_core.errors import HubError, create_error
from mcphub_core.logging.logger import HubLogger, InstallLogger
from mcphub_core.types import InstallStage, InstallStatus

from .runner import CommandRunner
from .types import (
    STAGE_PROGRESS,
    GitHubInstallConfig,
    InstallationProgress,
    InstallConfig,
    InstallValidation,
    LocalInstallConfig,
    NpmInstallConfig,
)
from .validation import github_owner_repo, parse_install_config, validate_install_config

STAGING_DIR = ".staging"


class _Cancelled(Exception):
    """Raised inside the pipeline when the run was cancelled."""


def _safe_dir_name(value: str) -> str:
    return re.sub(r"[^@a-zA-Z0-9._-]", "-", value.replace("/", "-")).strip("-") or "server"


class Installer:
    """Runs installation pipelines and keeps their progress records."""

    def __init__(
        self,
        install_dir: str | Path = ".mcp-servers",
        logger: HubLogger | None = None,
        runner: CommandRunner | None = None,
        stage_timeout: float = 300.0,
        retention_seconds: float = 60.0,
        npm_command: str = "npm",
        git_command: str = "git",
        which: Callable[[str], str | None] = shutil.which,
    ):
        """Initialize the installer.

        Args:
            install_dir: Root directory for installed servers
            logger: Optional logger
            runner: Command runner (injectable for tests)
            stage_timeout: Bound on every external command in seconds
            retention_seconds: How long terminal records stay pollable
            npm_command: npm executable
            git_command: git executable
            which: Tool lookup used by validation
        """
        self.install_dir = Path(install_dir).expanduser()
        self._logger = logger
        self._runner = runner or CommandRunner(timeout=stage_timeout)
        self.stage_timeout = stage_timeout
        self.retention_seconds = retention_seconds
        self.npm_command = npm_command
        self.git_command = git_command
        self._which = which
        self._installations: dict[str, InstallationProgress] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._cleanup_tasks: dict[str, asyncio.Task[None]] = {}

    def validate_installation(self, config: dict[str, Any] | InstallConfig) -> InstallValidation:
        """Check an installation source without downloading anything."""
        return validate_install_config(
            config,
            which=self._which,
            npm_command=self.npm_command,
            git_command=self.git_command,
        )

    async def install_server(
        self,
        config: dict[str, Any] | InstallConfig,
        name: str,
        description: str = "",
    ) -> InstallationProgress:
        """Start an installation and return its progress record immediately.

        Raises:
            HubError(CONFIG_INVALID): Validation failed; nothing was started
        """
        validation = self.validate_installation(config)
        if not validation.valid:
            raise create_error("CONFIG_INVALID", detail="; ".join(validation.error_messages()))
        typed = parse_install_config(config)

        install_id = uuid.uuid4().hex
        record = InstallationProgress(
            install_id=install_id,
            source=typed.source,
            name=name,
            description=description,
            message="Validation passed",
        )
        record.log(f"[{InstallStage.VALIDATING.value}] Validation passed")
        for warning in validation.warnings:
            record.log(f"[{InstallStage.VALIDATING.value}] Warning: {warning.message}")
        self._installations[install_id] = record

        ilog = self._install_log(record)
        if ilog:
            ilog.stage(record.stage.value, record.progress, record.message)

        self._tasks[install_id] = asyncio.create_task(
            self._run(record, typed),
            name=f"install-{install_id}",
        )
        return record

    def get_installation_progress(self, install_id: str) -> InstallationProgress | None:
        return self._installations.get(install_id)

    def list_installations(self) -> list[InstallationProgress]:
        return list(self._installations.values())

    def cancel_installation(self, install_id: str) -> bool:
        """Cancel an in-progress installation.

        Returns:
            True if a cancellable installation existed, False otherwise
        """
        record = self._installations.get(install_id)
        if record is None or record.is_terminal:
            return False

        record.status = InstallStatus.CANCELLED
        record.message = "Installation cancelled by user"
        record.completed_at = datetime.now(UTC)
        record.log(f"[{record.stage.value}] Cancelled")

        ilog = self._install_log(record)
        if ilog:
            ilog.cancelled(record.stage.value)
        self.schedule_cleanup(install_id, self.retention_seconds)
        return True

    def schedule_cleanup(self, install_id: str, delay: float) -> None:
        """Purge the record of ``install_id`` after ``delay`` seconds."""
        previous = self._cleanup_tasks.pop(install_id, None)
        if previous is not None:
            previous.cancel()

        async def purge_later() -> None:
            await asyncio.sleep(delay)
            self._cleanup_tasks.pop(install_id, None)
            self.cleanup_installation(install_id)

        self._cleanup_tasks[install_id] = asyncio.create_task(purge_later())

    def cleanup_installation(self, install_id: str) -> bool:
        """Forget the record of ``install_id`` and remove its staging files.

        Returns:
            True if a record existed
        """
        record = self._installations.pop(install_id, None)
        task = self._tasks.pop(install_id, None)
        if task is not None and not task.done():
            task.cancel()
        shutil.rmtree(self._staging_dir(install_id), ignore_errors=True)
        return record is not None

    async def close(self) -> None:
        """Cancel running pipelines and pending purges."""
        tasks = [*self._tasks.values(), *self._cleanup_tasks.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._cleanup_tasks.clear()

    def _install_log(self, record: InstallationProgress) -> InstallLogger | None:
        if self._logger:
            return self._logger.install(record.install_id, record.source.value)
        return None

    def _staging_dir(self, install_id: str) -> Path:
        return self.install_dir / STAGING_DIR / install_id

    async def _run(self, record: InstallationProgress, config: InstallConfig) -> None:
        start_time = time.monotonic()
        ilog = self._install_log(record)
        try:
            if isinstance(config, NpmInstallConfig):
                path = await self._install_npm(record, config)
            elif isinstance(config, GitHubInstallConfig):
                path = await self._install_github(record, config)
            else:
                path = await self._install_local(record, config)

            self._advance(record, InstallStage.COMPLETED, "Installation completed successfully")
            record.status = InstallStatus.COMPLETED
            record.completed_at = datetime.now(UTC)
            record.install_path = str(path)
            record.server_config = server_config_for(path, record)
            if ilog:
                ilog.completed(str(path), int((time.monotonic() - start_time) * 1000))
        except _Cancelled:
            pass
        except Exception as e:
            if record.status == InstallStatus.CANCELLED:
                return
            self._fail(record, e)
        finally:
            shutil.rmtree(self._staging_dir(record.install_id), ignore_errors=True)
            self._tasks.pop(record.install_id, None)

        if record.status == InstallStatus.COMPLETED:
            self.schedule_cleanup(record.install_id, self.retention_seconds)

    def _advance(self, record: InstallationProgress, stage: InstallStage, message: str) -> None:
        """Move to ``stage``; stops the pipeline if the run was cancelled."""
        if record.status != InstallStatus.IN_PROGRESS:
            raise _Cancelled
        if stage.order < record.stage.order:
            msg = f"Stage {stage.value} cannot follow {record.stage.value}"
            raise RuntimeError(msg)

        record.stage = stage
        record.progress = max(record.progress, STAGE_PROGRESS[stage])
        record.message = message
        record.log(f"[{stage.value}] {message}")

        ilog = self._install_log(record)
        if ilog:
            ilog.stage(stage.value, record.progress, message)

    def _fail(self, record: InstallationProgress, error: Exception) -> None:
        stage = record.stage.value
        if isinstance(error, HubError):
            hub_error = error.with_context(stage=stage)
        else:
            detail = str(error) or type(error).__name__
            hub_error = create_error("INSTALL_FAILED", stage=stage, detail=detail)

        record.status = InstallStatus.FAILED
        record.failed_at = datetime.now(UTC)
        record.error = hub_error
        record.message = hub_error.message
        record.log(f"[{stage}] Failed: {hub_error.message}")

        ilog = self._install_log(record)
        if ilog:
            ilog.failed(stage, hub_error)
        self.schedule_cleanup(record.install_id, self.retention_seconds)

    async def _command(
        self,
        record: InstallationProgress,
        args: list[str],
        cwd: Path | None = None,
    ) -> None:
        """Run one external command, failing the stage on a non-zero exit."""
        ilog = self._install_log(record)
        if ilog:
            ilog.command(args)
        record.log(f"$ {' '.join(args)}")

        result = await self._runner.run(
            args,
            cwd=cwd,
            on_output=lambda line: record.log(f"  {line}"),
            timeout=self.stage_timeout,
            stage=record.stage.value,
        )
        if not result.ok:
            raise create_error(
                "INSTALL_FAILED",
                stage=record.stage.value,
                detail=f"{' '.join(args[:2])} exited with code {result.returncode}: "
                f"{result.tail(3)}",
            )

    async def _install_npm(self, record: InstallationProgress, config: NpmInstallConfig) -> Path:
        staging = self._staging_dir(record.install_id)
        target = self.install_dir / "npm" / _safe_dir_name(config.package_name)

        self._advance(record, InstallStage.DOWNLOADING, f"Downloading {config.package_spec}...")
        staging.mkdir(parents=True, exist_ok=True)
        args = [self.npm_command, "pack", config.package_spec, "--pack-destination", str(staging)]
        if config.registry:
            args += ["--registry", config.registry]
        await self._command(record, args, cwd=staging)

        self._advance(record, InstallStage.EXTRACTING, "Extracting package...")
        tarballs = sorted(staging.glob("*.tgz"))
        if not tarballs:
            raise create_error(
                "INSTALL_FAILED", stage=record.stage.value, detail="npm pack produced no tarball"
            )
        extract_dir = staging / "extract"
        with tarfile.open(tarballs[0], "r:gz") as archive:
            archive.extractall(extract_dir, filter="data")
        package_root = extract_dir / "package"
        if not package_root.is_dir():
            package_root = extract_dir
        if target.exists():
            shutil.rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(package_root), str(target))

        self._advance(record, InstallStage.INSTALLING, "Installing dependencies...")
        manifest = _read_manifest(target)
        if manifest.get("dependencies"):
            await self._command(
                record,
                [self.npm_command, "install", "--omit=dev", "--no-audit", "--no-fund"],
                cwd=target,
            )
        else:
            record.log(f"[{record.stage.value}] No dependencies to install")
        return target

    async def _install_github(
        self,
        record: InstallationProgress,
        config: GitHubInstallConfig,
    ) -> Path:
        owner_repo = github_owner_repo(config.repository) or config.repository
        repo_name = owner_repo.rsplit("/", 1)[-1]
        target = self.install_dir / "github" / _safe_dir_name(repo_name)
        url = f"https://github.com/{owner_repo}.git"

        self._advance(record, InstallStage.DOWNLOADING, f"Cloning {owner_repo}...")
        if target.exists():
            shutil.rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        args = [self.git_command, "clone", "--depth", "1"]
        ref = config.branch or config.tag
        if ref:
            args += ["--branch", ref]
        await self._command(record, [*args, url, str(target)])

        self._advance(record, InstallStage.EXTRACTING, "Preparing checkout...")
        if config.commit:
            await self._command(
                record,
                [self.git_command, "fetch", "--depth", "1", "origin", config.commit],
                cwd=target,
            )
            await self._command(record, [self.git_command, "checkout", config.commit], cwd=target)
        server_dir = target
        if config.sub_path:
            server_dir = (target / config.sub_path).resolve()
            if not server_dir.is_relative_to(target.resolve()) or not server_dir.is_dir():
                raise create_error(
                    "INSTALL_FAILED",
                    stage=record.stage.value,
                    detail=f"sub_path '{config.sub_path}' is not a directory in the repository",
                )

        self._advance(record, InstallStage.INSTALLING, "Installing dependencies...")
        if (server_dir / "package.json").is_file():
            await self._command(
                record,
                [self.npm_command, "install", "--no-audit", "--no-fund"],
                cwd=server_dir,
            )
        else:
            record.log(f"[{record.stage.value}] No package.json, skipping dependencies")
        return server_dir

    async def _install_local(
        self,
        record: InstallationProgress,
        config: LocalInstallConfig,
    ) -> Path:
        self._advance(record, InstallStage.DOWNLOADING, "Nothing to download for a local path")

        self._advance(record, InstallStage.EXTRACTING, "Resolving local path...")
        path = Path(config.path).expanduser().resolve()
        if not path.is_dir():
            raise create_error(
                "INSTALL_FAILED",
                stage=record.stage.value,
                detail=f"Path is no longer a directory: {path}",
            )

        self._advance(record, InstallStage.INSTALLING, "Nothing to install for a local path")
        return path


def _read_manifest(directory: Path) -> dict[str, Any]:
    manifest = directory / "package.json"
    if not manifest.is_file():
        return {}
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def server_config_for(path: Path, record: InstallationProgress) -> StdioServerConfig | None:
    """Build a ready-to-connect definition from the package's entry point.

    Uses the first ``bin`` entry, then ``main``. Returns None when the
    package declares neither.
    """
    manifest = _read_manifest(path)
    bin_field = manifest.get("bin")
    entry: str | None = None
    if isinstance(bin_field, str):
        entry = bin_field
    elif isinstance(bin_field, dict) and bin_field:
        entry = next(iter(bin_field.values()))
    if not entry and isinstance(manifest.get("main"), str):
        entry = manifest["main"]
    if not entry:
        return None

    return StdioServerConfig(
        id=f"{_safe_dir_name(record.name.lower())}-{record.install_id[:8]}",
        name=record.name,
        description=record.description or str(manifest.get("description") or ""),
        command="node",
        args=[str(path / entry)],
        cwd=str(path),
    )
