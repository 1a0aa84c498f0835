"""Installer - installs servers from npm, GitHub or a local path."""

from .installer import Installer, server_config_for
from .runner import CommandResult, CommandRunner
from .types import (
    STAGE_PROGRESS,
    DependencyInfo,
    GitHubInstallConfig,
    InstallationProgress,
    InstallConfig,
    InstallValidation,
    LocalInstallConfig,
    NpmInstallConfig,
)
from .validation import parse_install_config, validate_install_config

__all__ = [
    "Installer",
    "CommandRunner",
    "CommandResult",
    "InstallConfig",
    "NpmInstallConfig",
    "GitHubInstallConfig",
    "LocalInstallConfig",
    "InstallValidation",
    "DependencyInfo",
    "InstallationProgress",
    "STAGE_PROGRESS",
    "parse_install_config",
    "validate_install_config",
    "server_config_for",
]
