"""Unit tests for the Installer pipelines.

External commands go through FakeCommandRunner, so nothing is downloaded.
"""

import asyncio
import json
import time

import pytest
from mocks import FakeCommandRunner

from mcphub_core.errors import HubError
from mcphub_core.installer import (
    GitHubInstallConfig,
    Installer,
    LocalInstallConfig,
    NpmInstallConfig,
)
from mcphub_core.types import InstallSource, InstallStage, InstallStatus

STAGE_ORDER = ["validating", "downloading", "extracting", "installing", "completed"]


def _all_tools(command: str) -> str:
    return f"/usr/bin/{command}"


async def _wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def runner():
    return FakeCommandRunner()


@pytest.fixture
def installer(tmp_path, runner, hub_logger):
    return Installer(
        install_dir=tmp_path / "servers",
        logger=hub_logger,
        runner=runner,
        retention_seconds=60,
        which=_all_tools,
    )


class TestNpmInstall:
    """Tests for npm installs."""

    @pytest.mark.asyncio
    async def test_completes(self, installer, runner, tmp_path):
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        assert record.status == InstallStatus.IN_PROGRESS
        assert record.source == InstallSource.NPM

        await _wait_until(lambda: record.is_terminal)
        assert record.status == InstallStatus.COMPLETED
        assert record.stage == InstallStage.COMPLETED
        assert record.progress == 100
        assert record.completed_at is not None

        target = tmp_path / "servers" / "npm" / "demo"
        assert record.install_path == str(target)
        assert (target / "index.js").is_file()
        assert runner.calls[0][:3] == ["npm", "pack", "demo@1.0.0"]
        assert len(runner.calls) == 1
        await installer.close()

    @pytest.mark.asyncio
    async def test_dependencies_installed(self, tmp_path, hub_logger):
        runner = FakeCommandRunner(
            manifest={"name": "demo", "version": "1.0.0", "dependencies": {"zod": "^3"}}
        )
        installer = Installer(tmp_path, logger=hub_logger, runner=runner, which=_all_tools)
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: record.is_terminal)
        assert record.status == InstallStatus.COMPLETED
        assert runner.calls[1][:2] == ["npm", "install"]
        await installer.close()

    @pytest.mark.asyncio
    async def test_server_config_from_bin(self, installer):
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "My Demo")
        await _wait_until(lambda: record.is_terminal)
        config = record.server_config
        assert config is not None
        assert config.command == "node"
        assert config.args == [f"{record.install_path}/index.js"]
        assert config.id.startswith("my-demo-")
        assert record.to_dict()["server_config"]["transport_type"] == "stdio"
        await installer.close()

    @pytest.mark.asyncio
    async def test_stages_logged_in_order(self, installer):
        """Test every stage transition lands in the log, in pipeline order."""
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: record.is_terminal)
        stages = []
        for line in record.logs:
            if line.startswith("["):
                stage = line[1 : line.index("]")]
                if not stages or stages[-1] != stage:
                    stages.append(stage)
        assert stages == STAGE_ORDER
        await installer.close()

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self, installer, log_stream):
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: record.is_terminal)
        entries = [json.loads(line) for line in log_stream.getvalue().splitlines()]
        progress = [e["progress"] for e in entries if e.get("event") == "install_stage"]
        assert progress == sorted(progress)
        assert progress[0] == 0
        assert progress[-1] == 100
        await installer.close()

    @pytest.mark.asyncio
    async def test_command_failure_records_stage(self, tmp_path, hub_logger):
        """Test a failing command fails the run with the stage it was in."""
        runner = FakeCommandRunner(fail={"npm pack": 1})
        installer = Installer(tmp_path, logger=hub_logger, runner=runner, which=_all_tools)
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: record.is_terminal)

        assert record.status == InstallStatus.FAILED
        assert record.failed_at is not None
        assert record.error.code == "INSTALL_FAILED"
        assert record.error.stage == "downloading"
        assert record.error.classification == "InstallationError"
        assert record.to_dict()["error"]["stage"] == "downloading"
        assert not (tmp_path / ".staging" / record.install_id).exists()
        await installer.close()


class TestGitHubInstall:
    """Tests for GitHub installs."""

    @pytest.mark.asyncio
    async def test_clone_and_install(self, installer, runner, tmp_path):
        record = await installer.install_server(
            GitHubInstallConfig("https://github.com/octo/server.git", branch="main"), "Octo"
        )
        await _wait_until(lambda: record.is_terminal)
        assert record.status == InstallStatus.COMPLETED
        clone = runner.calls[0]
        assert clone[:2] == ["git", "clone"]
        assert ["--branch", "main"] == clone[4:6]
        assert "https://github.com/octo/server.git" in clone
        assert runner.calls[1][:2] == ["npm", "install"]
        assert record.install_path == str(tmp_path / "servers" / "github" / "server")
        await installer.close()

    @pytest.mark.asyncio
    async def test_commit_checked_out(self, installer, runner):
        record = await installer.install_server(
            GitHubInstallConfig("octo/server", commit="abc1234"), "Octo"
        )
        await _wait_until(lambda: record.is_terminal)
        assert ["git", "checkout", "abc1234"] in runner.calls
        await installer.close()

    @pytest.mark.asyncio
    async def test_missing_sub_path_fails(self, installer):
        record = await installer.install_server(
            GitHubInstallConfig("octo/server", sub_path="packages/missing"), "Octo"
        )
        await _wait_until(lambda: record.is_terminal)
        assert record.status == InstallStatus.FAILED
        assert record.error.stage == "extracting"
        await installer.close()


class TestLocalInstall:
    """Tests for local installs."""

    @pytest.mark.asyncio
    async def test_registers_existing_directory(self, installer, runner, tmp_path):
        server_dir = tmp_path / "my-server"
        server_dir.mkdir()
        (server_dir / "package.json").write_text(json.dumps({"main": "server.js"}))

        record = await installer.install_server(LocalInstallConfig(str(server_dir)), "Mine")
        await _wait_until(lambda: record.is_terminal)
        assert record.status == InstallStatus.COMPLETED
        assert record.install_path == str(server_dir.resolve())
        assert record.server_config.args == [str(server_dir.resolve() / "server.js")]
        assert runner.calls == []
        await installer.close()

    @pytest.mark.asyncio
    async def test_missing_path_rejected_up_front(self, installer, tmp_path):
        with pytest.raises(HubError) as exc_info:
            await installer.install_server(LocalInstallConfig(str(tmp_path / "nope")), "Nope")
        assert exc_info.value.classification == "ConfigurationError"
        assert installer.list_installations() == []


class TestCancellation:
    """Tests for cancel_installation."""

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self, tmp_path):
        runner = FakeCommandRunner(blocked={"npm pack"})
        installer = Installer(tmp_path, runner=runner, which=_all_tools)
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: runner.calls)

        assert installer.cancel_installation(record.install_id) is True
        assert record.status == InstallStatus.CANCELLED
        assert installer.cancel_installation(record.install_id) is False

        runner.release()
        await asyncio.sleep(0.05)
        assert record.status == InstallStatus.CANCELLED
        assert record.stage == InstallStage.DOWNLOADING
        assert record.install_path is None
        await installer.close()

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, installer):
        assert installer.cancel_installation("missing") is False

    @pytest.mark.asyncio
    async def test_cancel_completed(self, installer):
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: record.is_terminal)
        assert installer.cancel_installation(record.install_id) is False
        assert record.status == InstallStatus.COMPLETED
        await installer.close()


class TestRetention:
    """Tests for record purging."""

    @pytest.mark.asyncio
    async def test_terminal_record_purged(self, tmp_path, runner):
        installer = Installer(tmp_path, runner=runner, retention_seconds=0.05, which=_all_tools)
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: record.is_terminal)
        await _wait_until(lambda: installer.get_installation_progress(record.install_id) is None)
        await installer.close()

    @pytest.mark.asyncio
    async def test_cleanup_installation(self, installer):
        record = await installer.install_server(NpmInstallConfig("demo", "1.0.0"), "Demo")
        await _wait_until(lambda: record.is_terminal)
        assert installer.cleanup_installation(record.install_id) is True
        assert installer.cleanup_installation(record.install_id) is False
        await installer.close()
