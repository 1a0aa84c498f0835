"""Static checks on installation sources. Nothing is downloaded here."""

import dataclasses
import re
import shutil
from collections.abc import Callable
from pathlib import Path, PurePath
from typing import Any

import httpx

from mcphub_core.errors import ErrorCategory, create_error
from mcphub_core.types import InstallSource, ValidationIssue

from .types import (
    DependencyInfo,
    GitHubInstallConfig,
    InstallConfig,
    InstallValidation,
    LocalInstallConfig,
    NpmInstallConfig,
)

NPM_NAME_PATTERN = re.compile(r"^(@[a-z0-9-~][a-z0-9-._~]*\/)?[a-z0-9-~][a-z0-9-._~]*$")
GITHUB_REPO_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+\/[a-zA-Z0-9_.-]+$")
COMMIT_PATTERN = re.compile(r"^[a-f0-9]{7,40}$", re.IGNORECASE)

MB = 1024 * 1024

# (estimated size in bytes, estimated time in seconds)
ESTIMATES: dict[InstallSource, tuple[int, int]] = {
    InstallSource.NPM: (10 * MB, 30),
    InstallSource.GITHUB: (50 * MB, 60),
    InstallSource.LOCAL: (0, 1),
}

_ALIASES = {
    "packageName": "package_name",
    "package": "package_name",
    "subPath": "sub_path",
    "repo": "repository",
}

_FIELDS: dict[InstallSource, set[str]] = {
    InstallSource.NPM: {"package_name", "version", "registry"},
    InstallSource.GITHUB: {"repository", "branch", "tag", "commit", "sub_path"},
    InstallSource.LOCAL: {"path"},
}

_CONFIG_TYPES: dict[InstallSource, type] = {
    InstallSource.NPM: NpmInstallConfig,
    InstallSource.GITHUB: GitHubInstallConfig,
    InstallSource.LOCAL: LocalInstallConfig,
}


def _as_mapping(config: dict[str, Any] | InstallConfig) -> dict[str, Any]:
    if isinstance(config, dict):
        return {_ALIASES.get(key, key): value for key, value in config.items()}
    data = dataclasses.asdict(config)
    data["source"] = config.source.value
    return data


def _source_of(data: dict[str, Any]) -> InstallSource | None:
    try:
        return InstallSource(data.get("source"))
    except ValueError:
        return None


def _has_parent_segment(path: str) -> bool:
    return ".." in PurePath(path.replace("\\", "/")).parts


def github_owner_repo(repository: str) -> str | None:
    """Return ``owner/repo`` for a repository reference, or None if malformed."""
    if GITHUB_REPO_PATTERN.match(repository):
        return repository
    try:
        url = httpx.URL(repository)
    except httpx.InvalidURL:
        return None
    if url.host != "github.com":
        return None
    parts = [part for part in url.path.split("/") if part]
    if len(parts) < 2:
        return None
    return f"{parts[0]}/{parts[1].removesuffix('.git')}"


def validate_install_config(
    config: dict[str, Any] | InstallConfig,
    which: Callable[[str], str | None] = shutil.which,
    npm_command: str = "npm",
    git_command: str = "git",
) -> InstallValidation:
    """Validate an installation source.

    Args:
        config: Typed config, or a raw mapping with a ``source`` key
        which: Tool lookup (``shutil.which`` unless injected)
        npm_command: npm executable name
        git_command: git executable name

    Returns:
        InstallValidation with categorized errors and warnings
    """
    data = _as_mapping(config)
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    dependencies: list[DependencyInfo] = []

    source = _source_of(data)
    if source is None:
        allowed = ", ".join(s.value for s in InstallSource)
        errors.append(ValidationIssue(path="source", message=f"source must be one of: {allowed}"))
        return InstallValidation(valid=False, errors=errors)

    for key in data:
        if key != "source" and key not in _FIELDS[source]:
            warnings.append(
                ValidationIssue(
                    path=key,
                    message=f"Field '{key}' is ignored for {source.value} installs",
                    severity="warning",
                )
            )

    def require_tool(command: str, required: bool) -> None:
        installed = which(command) is not None
        dependencies.append(DependencyInfo(name=command, required=required, installed=installed))
        if required and not installed:
            errors.append(
                ValidationIssue(
                    path="source",
                    message=f"{command} is not installed or not available in PATH",
                    category=ErrorCategory.INSTALLATION,
                )
            )

    if source == InstallSource.NPM:
        _validate_npm(data, errors, warnings)
        require_tool(npm_command, required=True)
    elif source == InstallSource.GITHUB:
        _validate_github(data, errors)
        require_tool(git_command, required=True)
        require_tool(npm_command, required=False)
    else:
        _validate_local(data, errors, warnings)

    size, seconds = ESTIMATES[source]
    return InstallValidation(
        valid=True,
        errors=errors,
        warnings=warnings,
        dependencies=dependencies,
        estimated_size=size,
        estimated_time=seconds,
    )


def _required_string(
    data: dict[str, Any], key: str, errors: list[ValidationIssue]
) -> str | None:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        errors.append(ValidationIssue(path=key, message=f"{key} is required"))
        return None
    return value.strip()


def _validate_npm(
    data: dict[str, Any],
    errors: list[ValidationIssue],
    warnings: list[ValidationIssue],
) -> None:
    name = _required_string(data, "package_name", errors)
    if name is not None and (not NPM_NAME_PATTERN.match(name) or ".." in name):
        errors.append(
            ValidationIssue(path="package_name", message="Invalid npm package name format")
        )

    version = data.get("version")
    if not version:
        warnings.append(
            ValidationIssue(
                path="version",
                message="No version pinned; the latest release will be installed",
                severity="warning",
            )
        )
    elif not isinstance(version, str) or re.search(r"[\s;&|`$<>]", version):
        errors.append(ValidationIssue(path="version", message="Invalid version specifier"))

    registry = data.get("registry")
    if registry:
        try:
            scheme = httpx.URL(registry).scheme
        except (httpx.InvalidURL, TypeError):
            scheme = ""
        if scheme not in ("http", "https"):
            errors.append(
                ValidationIssue(path="registry", message=f"registry is not an HTTP URL: {registry}")
            )


def _validate_github(data: dict[str, Any], errors: list[ValidationIssue]) -> None:
    repository = _required_string(data, "repository", errors)
    if repository is not None and github_owner_repo(repository) is None:
        errors.append(
            ValidationIssue(
                path="repository",
                message="Invalid GitHub repository format. Expected: owner/repo",
            )
        )

    if data.get("branch") and data.get("tag"):
        errors.append(
            ValidationIssue(path="tag", message="branch and tag cannot both be set")
        )

    commit = data.get("commit")
    if commit and (not isinstance(commit, str) or not COMMIT_PATTERN.match(commit)):
        errors.append(
            ValidationIssue(
                path="commit",
                message="Invalid commit hash format. Must be 7-40 hexadecimal characters",
            )
        )

    sub_path = data.get("sub_path")
    if sub_path and (
        not isinstance(sub_path, str)
        or PurePath(sub_path).is_absolute()
        or _has_parent_segment(sub_path)
    ):
        errors.append(
            ValidationIssue(
                path="sub_path",
                message="sub_path must be a relative path inside the repository",
            )
        )


def _validate_local(
    data: dict[str, Any],
    errors: list[ValidationIssue],
    warnings: list[ValidationIssue],
) -> None:
    raw = _required_string(data, "path", errors)
    if raw is None:
        return
    if _has_parent_segment(raw):
        errors.append(
            ValidationIssue(path="path", message="path must not contain '..' segments")
        )
        return

    path = Path(raw).expanduser()
    if not path.exists():
        errors.append(ValidationIssue(path="path", message=f"Path does not exist: {raw}"))
    elif not path.is_dir():
        errors.append(ValidationIssue(path="path", message="Path must be a directory"))
    elif not (path / "package.json").is_file():
        warnings.append(
            ValidationIssue(
                path="path",
                message="No package.json found; the server entry point must be set manually",
                severity="warning",
            )
        )


def parse_install_config(config: dict[str, Any] | InstallConfig) -> InstallConfig:
    """Build a typed installation source from a raw mapping.

    Only structure is checked here; use validate_install_config for the rest.

    Raises:
        HubError(CONFIG_INVALID): Unknown source or missing required field
    """
    if isinstance(config, NpmInstallConfig | GitHubInstallConfig | LocalInstallConfig):
        return config

    data = _as_mapping(config)
    source = _source_of(data)
    if source is None:
        raise create_error("CONFIG_INVALID", detail=f"Unknown install source: {data.get('source')}")

    fields = {key: value for key, value in data.items() if key in _FIELDS[source]}
    try:
        return _CONFIG_TYPES[source](**fields)
    except TypeError as e:
        raise create_error("CONFIG_INVALID", detail=str(e)) from e
