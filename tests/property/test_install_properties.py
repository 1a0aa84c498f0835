"""Property-based tests for installation validation and progress."""

import asyncio
import tempfile

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from mocks import FakeCommandRunner

from mcphub_core.installer import (
    GitHubInstallConfig,
    Installer,
    NpmInstallConfig,
    validate_install_config,
)
from mcphub_core.installer.validation import github_owner_repo
from mcphub_core.types import InstallStatus

package_part = st.from_regex(r"^[a-z0-9][a-z0-9._-]{0,20}$", fullmatch=True).filter(
    lambda part: ".." not in part
)
versions = st.from_regex(r"^[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}$", fullmatch=True)
owners = st.from_regex(r"^[A-Za-z0-9][A-Za-z0-9-]{0,15}$", fullmatch=True)
repos = st.from_regex(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,20}$", fullmatch=True).filter(
    lambda name: not name.endswith(".git") and name not in (".", "..")
)


# Commands each pipeline runs for a manifest with dependencies
COMMANDS = {
    "npm": {"npm pack", "npm install"},
    "github": {"git clone", "npm install"},
}


def _all_tools(command: str) -> str:
    return f"/usr/bin/{command}"


@pytest.mark.property
class TestValidation:
    """Property tests for source validation."""

    @given(st.one_of(st.none(), package_part), package_part, versions)
    @settings(max_examples=50)
    def test_well_formed_npm_packages_accepted(self, scope, name, version):
        package = f"@{scope}/{name}" if scope else name
        result = validate_install_config(NpmInstallConfig(package, version), which=_all_tools)
        assert result.valid, result.error_messages()
        assert result.warnings == []

    @given(package_part, st.sampled_from([";", "|", "&", "$", "`", " ", "\n"]))
    @settings(max_examples=30)
    def test_shell_metacharacters_rejected(self, name, char):
        result = validate_install_config(
            NpmInstallConfig(name, f"1.0.0{char}evil"), which=_all_tools
        )
        assert not result.valid

    @given(owners, repos)
    @settings(max_examples=50)
    def test_github_forms_agree(self, owner, repo):
        """Short form, URL and clone URL name the same repository."""
        expected = f"{owner}/{repo}"
        for form in (
            expected,
            f"https://github.com/{owner}/{repo}",
            f"https://github.com/{owner}/{repo}.git",
        ):
            assert github_owner_repo(form) == expected
            result = validate_install_config(GitHubInstallConfig(form), which=_all_tools)
            assert result.valid, result.error_messages()


@pytest.mark.property
class TestProgress:
    """Property tests for progress records."""

    @given(
        st.sampled_from(["npm", "github"]),
        st.one_of(st.none(), st.sampled_from(["npm pack", "git clone", "npm install"])),
    )
    @settings(max_examples=20, deadline=None)
    def test_progress_monotonic_and_terminal(self, source, failing):
        """Whatever fails, progress never decreases and the run ends terminal."""

        async def scenario(install_dir):
            runner = FakeCommandRunner(
                manifest={"name": "demo", "bin": "index.js", "dependencies": {"zod": "^3"}},
                fail={failing: 1} if failing else {},
            )
            installer = Installer(install_dir, runner=runner, which=_all_tools)
            config = (
                NpmInstallConfig("demo", "1.0.0")
                if source == "npm"
                else GitHubInstallConfig("octo/demo")
            )
            record = await installer.install_server(config, "Demo")
            seen = [record.progress]
            while not record.is_terminal:
                await asyncio.sleep(0)
                seen.append(record.progress)
            await installer.close()
            return record, seen

        with tempfile.TemporaryDirectory() as install_dir:
            record, seen = asyncio.run(scenario(install_dir))

        assert seen == sorted(seen)
        if failing in COMMANDS[source]:
            assert record.status == InstallStatus.FAILED
            assert record.error.stage is not None
            assert record.progress < 100
        else:
            assert record.status == InstallStatus.COMPLETED
            assert record.progress == 100
