"""Hub configuration loader."""

import os
import re
import typing
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from mcphub_core.errors import create_error
from mcphub_core.types import (
    LogFormat,
    LogLevel,
    RateLimitStrategy,
    ValidationIssue,
    ValidationResult,
)

from .models import HubConfig

INSTALL_DIR_ENV = "MCP_INSTALL_DIR"
CONFIG_PATH_ENV = "MCPHUB_CONFIG_PATH"

# Section -> keys that must be positive numbers
_POSITIVE_NUMBERS: dict[str, tuple[str, ...]] = {
    "connection": ("connect_timeout", "discovery_timeout", "disconnect_timeout"),
    "process": ("grace_period", "output_lines"),
    "installer": ("stage_timeout",),
    "registry": ("cache_ttl", "page_size", "request_timeout", "npm_search_size"),
    "pool": ("max_connections", "max_idle_time", "max_connection_age", "acquire_timeout"),
    "rate_limit": ("max_requests", "window_seconds"),
    "cleanup": ("interval_seconds", "oauth_state_max_age"),
    "health": ("check_interval", "timeout", "retry_delay"),
}

_ENUM_FIELDS: dict[tuple[str, str], type[Enum]] = {
    ("rate_limit", "strategy"): RateLimitStrategy,
    ("logging", "level"): LogLevel,
    ("logging", "format"): LogFormat,
}


def resolve_env_vars(value: str) -> str:
    """Resolve environment variable references in string.

    Supports:
    - ${VAR} - Required, error if not set
    - ${VAR:-default} - With default value
    - ${VAR:?error message} - Required with custom error

    Args:
        value: String with potential env var references

    Returns:
        String with env vars resolved

    Raises:
        HubError: If required var not set
    """
    # Pattern: ${VAR}, ${VAR:-default}, ${VAR:?error}
    pattern = r"\$\{([^}:]+)(?::([?-])([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        operator = match.group(2)  # '-' or '?' or None
        operand = match.group(3)  # default value or error message

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value

        # Variable not set
        if operator == "-":
            return operand or ""
        error_msg = operand or f"Required environment variable {var_name} not set"
        raise create_error("CONFIG_INVALID", detail=error_msg)

    return re.sub(pattern, replacer, value)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    else:
        return data


class ConfigLoader:
    """Load and validate hub configuration."""

    def __init__(self, logger: Any = None):
        """Initialize config loader.

        Args:
            logger: Optional HubLogger instance
        """
        self._config: HubConfig | None = None
        self._config_path: Path | None = None
        self._logger = logger

    def load(self, path: str | Path | None = None, use_defaults: bool = True) -> HubConfig:
        """Load configuration from file.

        Resolution order if path not specified:
        1. MCPHUB_CONFIG_PATH environment variable
        2. ./mcphub.yaml
        3. ~/.mcphub/config.yaml
        4. If use_defaults=True and no file found, use default configuration

        Args:
            path: Optional path to config file
            use_defaults: If True, use default config when no file found

        Returns:
            Loaded HubConfig instance

        Raises:
            HubError: If file not found (when use_defaults=False) or invalid
        """
        # Resolve config path
        if path is None:
            path = self._resolve_config_path()

        config_path = Path(path).expanduser()

        if not config_path.exists():
            if use_defaults:
                # Use default configuration when no file found
                return self.load_defaults()
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Configuration file not found: {config_path}",
            )

        # Load YAML
        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Invalid YAML in config file: {e}",
            ) from e

        if not isinstance(data, dict):
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Top level of {config_path} must be a mapping",
            )

        # Resolve environment variables
        data = _resolve_env_vars_recursive(data)

        # Load from dict
        return self.load_from_dict(data, config_path)

    def load_defaults(self) -> HubConfig:
        """Load default configuration without a file.

        Returns:
            HubConfig with default values
        """
        return self.load_from_dict({})

    def load_from_dict(self, data: dict[str, Any], config_path: Path | None = None) -> HubConfig:
        """Load configuration from dictionary.

        Args:
            data: Configuration dictionary
            config_path: Optional path to config file (for tracking)

        Returns:
            Loaded HubConfig instance

        Raises:
            HubError: If configuration is invalid
        """
        # Validate
        validation = self.validate(data)
        if not validation.valid:
            error_messages = [f"- {message}" for message in validation.error_messages()]
            raise create_error(
                "CONFIG_INVALID",
                detail="Configuration validation failed:\n" + "\n".join(error_messages),
            )

        # Convert to HubConfig
        try:
            config = self._dict_to_config(data)
        except (TypeError, ValueError) as e:
            raise create_error(
                "CONFIG_INVALID",
                detail=f"Failed to parse configuration: {e}",
            ) from e

        install_dir = os.environ.get(INSTALL_DIR_ENV)
        if install_dir:
            config.installer.install_dir = install_dir

        self._config = config
        self._config_path = config_path

        if self._logger:
            for warning in validation.warnings:
                self._logger._log(LogLevel.WARN, "registry", f"Config: {warning.message}")

        return config

    def validate(self, data: dict[str, Any]) -> ValidationResult:
        """Validate config data without loading.

        Args:
            data: Configuration dictionary

        Returns:
            ValidationResult with errors and warnings
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        valid_keys = {f.name for f in fields(HubConfig)}

        # Basic validation - check for unknown top-level keys
        for key, section in data.items():
            if key not in valid_keys:
                warnings.append(
                    ValidationIssue(
                        path=key,
                        message=f"Unknown configuration key: {key}",
                        severity="warning",
                    )
                )
                continue

            if not isinstance(section, dict):
                errors.append(ValidationIssue(path=key, message=f"{key} must be a dictionary"))
                continue

            # Validate numeric settings
            for number_key in _POSITIVE_NUMBERS.get(key, ()):
                if number_key not in section:
                    continue
                value = section[number_key]
                if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
                    errors.append(
                        ValidationIssue(
                            path=f"{key}.{number_key}",
                            message=f"{number_key} must be a positive number",
                        )
                    )

        # Validate enum settings
        for (section_name, key), enum_type in _ENUM_FIELDS.items():
            section = data.get(section_name)
            if not isinstance(section, dict) or key not in section:
                continue
            allowed = [member.value for member in enum_type]
            if section[key] not in allowed:
                errors.append(
                    ValidationIssue(
                        path=f"{section_name}.{key}",
                        message=f"{key} must be one of: {', '.join(allowed)}",
                    )
                )

        return ValidationResult(valid=True, errors=errors, warnings=warnings)

    def get(self) -> HubConfig:
        """Get current configuration.

        Raises:
            HubError: If configuration not loaded
        """
        if self._config is None:
            raise create_error("CONFIG_INVALID", detail="Configuration not loaded")
        return self._config

    def reload(self) -> HubConfig:
        """Reload configuration from the last loaded file.

        Raises:
            HubError: If no config path set or reload fails
        """
        if self._config_path is None:
            raise create_error("CONFIG_INVALID", detail="No config path set, cannot reload")
        return self.load(self._config_path)

    def _resolve_config_path(self) -> Path:
        # 1. MCPHUB_CONFIG_PATH environment variable
        env_path = os.environ.get(CONFIG_PATH_ENV)
        if env_path:
            return Path(env_path)

        # 2. ./mcphub.yaml
        local_path = Path("mcphub.yaml")
        if local_path.exists():
            return local_path

        # 3. ~/.mcphub/config.yaml
        home_path = Path.home() / ".mcphub" / "config.yaml"
        if home_path.exists():
            return home_path

        # Not found - use local path as default
        return local_path

    def _dict_to_config(self, data: dict[str, Any]) -> HubConfig:
        kwargs: dict[str, Any] = {}

        # Use dataclass defaults for missing sections
        for f in fields(HubConfig):
            if f.name in data:
                kwargs[f.name] = self._convert_field(f.type, data[f.name])

        return HubConfig(**kwargs)

    def _convert_field(self, field_type: Any, value: Any) -> Any:
        """Convert field value to appropriate type.

        Args:
            field_type: Expected field type
            value: Value to convert

        Returns:
            Converted value
        """
        if value is None:
            return None

        origin = typing.get_origin(field_type)

        # Handle lists
        if origin is list:
            if not isinstance(value, list):
                return value
            args = typing.get_args(field_type)
            if args:
                return [self._convert_field(args[0], item) for item in value]
            return value

        # Handle dicts
        if origin is dict:
            if not isinstance(value, dict):
                return value
            args = typing.get_args(field_type)
            if args and len(args) == 2:
                return {k: self._convert_field(args[1], v) for k, v in value.items()}
            return value

        # Handle nested dataclasses
        if hasattr(field_type, "__dataclass_fields__"):
            if isinstance(value, dict):
                kwargs = {}
                for f in fields(field_type):
                    if f.name in value:
                        kwargs[f.name] = self._convert_field(f.type, value[f.name])
                return field_type(**kwargs)
            return value

        if isinstance(field_type, type) and issubclass(field_type, Enum):
            if isinstance(value, str):
                return field_type(value)
            return value

        return value


# Convenience singleton
_default_loader: ConfigLoader | None = None


def get_config_loader() -> ConfigLoader:
    """Get default config loader singleton."""
    global _default_loader  # noqa: PLW0603
    if _default_loader is None:
        _default_loader = ConfigLoader()
    return _default_loader


def load_config(path: str | Path | None = None) -> HubConfig:
    """Convenience function to load config.

    Args:
        path: Optional path to config file

    Returns:
        Loaded HubConfig instance
    """
    return get_config_loader().load(path)
