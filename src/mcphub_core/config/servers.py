"""MCP server definitions: one dataclass per transport kind."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar

import httpx

from mcphub_core.errors import create_error
from mcphub_core.types import AuthType, TransportType, ValidationIssue, ValidationResult

DEFAULT_TIMEOUT = 30.0
DEFAULT_API_KEY_HEADER = "X-API-Key"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class OAuthClientConfig:
    """OAuth 2.0 client registration used to start an authorization handshake."""

    authorization_url: str
    token_url: str
    client_id: str
    redirect_uri: str
    scope: str | None = None
    client_secret: str | None = None


@dataclass
class AuthConfig:
    """Credentials merged into the header set of remote transports."""

    auth_type: AuthType = AuthType.NONE
    bearer_token: str | None = None
    api_key: str | None = None
    api_key_header: str = DEFAULT_API_KEY_HEADER
    username: str | None = None
    password: str | None = None
    oauth_token: str | None = None  # access token obtained out of band
    oauth: OAuthClientConfig | None = None


@dataclass(kw_only=True)
class _ServerConfigBase:
    id: str
    name: str
    description: str = ""
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass(kw_only=True)
class StdioServerConfig(_ServerConfigBase):
    """Server spawned as a subprocess speaking MCP over stdin/stdout."""

    transport_type: ClassVar[TransportType] = TransportType.STDIO

    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    timeout: float = DEFAULT_TIMEOUT


@dataclass(kw_only=True)
class SSEServerConfig(_ServerConfigBase):
    """Server reached through a server-sent events stream."""

    transport_type: ClassVar[TransportType] = TransportType.SSE

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    auth: AuthConfig = field(default_factory=AuthConfig)
    timeout: float = DEFAULT_TIMEOUT


@dataclass(kw_only=True)
class HTTPServerConfig(_ServerConfigBase):
    """Server reached through plain JSON-RPC request/response over HTTP."""

    transport_type: ClassVar[TransportType] = TransportType.HTTP

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    auth: AuthConfig = field(default_factory=AuthConfig)
    timeout: float = DEFAULT_TIMEOUT


ServerConfig = StdioServerConfig | SSEServerConfig | HTTPServerConfig
RemoteServerConfig = SSEServerConfig | HTTPServerConfig


# Accepted spellings for each canonical field name
_ALIASES: dict[str, str] = {
    "transportType": "transport_type",
    "transport": "transport_type",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "authType": "auth_type",
    "bearerToken": "bearer_token",
    "token": "bearer_token",
    "apiKey": "api_key",
    "apiKeyHeader": "api_key_header",
    "oauthToken": "oauth_token",
    "accessToken": "oauth_token",
    "oauthConfig": "oauth",
}

_COMMON_FIELDS = {"id", "name", "description", "created_at", "updated_at", "transport_type"}
_STDIO_FIELDS = {"command", "args", "env", "cwd", "timeout"}
_AUTH_FIELDS = {
    "auth_type",
    "bearer_token",
    "api_key",
    "api_key_header",
    "username",
    "password",
    "oauth_token",
    "oauth",
}
_REMOTE_FIELDS = {"url", "headers", "auth", "timeout"} | _AUTH_FIELDS

_OAUTH_ALIASES = {
    "authorizationUrl": "authorization_url",
    "tokenUrl": "token_url",
    "clientId": "client_id",
    "clientSecret": "client_secret",
    "redirectUri": "redirect_uri",
}
_OAUTH_FIELDS = {
    "authorization_url",
    "token_url",
    "client_id",
    "client_secret",
    "redirect_uri",
    "scope",
}


def _normalize_keys(data: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    return {aliases.get(key, key): value for key, value in data.items()}


def _flatten_auth(data: dict[str, Any]) -> dict[str, Any]:
    """Lift a nested ``auth`` mapping to the top level."""
    auth = data.get("auth")
    if isinstance(auth, dict):
        merged = {k: v for k, v in data.items() if k != "auth"}
        merged.update(_normalize_keys(auth, _ALIASES))
        return merged
    return data


def _transport_of(data: dict[str, Any]) -> TransportType | None:
    value = data.get("transport_type")
    if isinstance(value, TransportType):
        return value
    try:
        return TransportType(value)
    except ValueError:
        return None


def _is_positive_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, int | float) and value > 0


def validate_server_config(data: dict[str, Any]) -> ValidationResult:
    """Validate a raw server definition before any I/O is attempted.

    Args:
        data: Server definition using camelCase or snake_case keys

    Returns:
        ValidationResult; every error is CONFIGURATION-classified
    """
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    data = _flatten_auth(_normalize_keys(data, _ALIASES))

    for required in ("id", "name"):
        value = data.get(required)
        if not isinstance(value, str) or not value.strip():
            errors.append(ValidationIssue(path=required, message=f"{required} is required"))

    transport = _transport_of(data)
    if transport is None:
        allowed = ", ".join(t.value for t in TransportType)
        errors.append(
            ValidationIssue(
                path="transport_type",
                message=f"transport_type must be one of: {allowed}",
            )
        )
        return ValidationResult(valid=False, errors=errors, warnings=warnings)

    allowed_fields = _COMMON_FIELDS | (
        _STDIO_FIELDS if transport == TransportType.STDIO else _REMOTE_FIELDS
    )
    for key in data:
        if key not in allowed_fields:
            errors.append(
                ValidationIssue(
                    path=key,
                    message=f"Field '{key}' does not apply to {transport.value} transport",
                )
            )

    if "timeout" in data and not _is_positive_number(data["timeout"]):
        errors.append(
            ValidationIssue(path="timeout", message="timeout must be a positive number")
        )

    if transport == TransportType.STDIO:
        _validate_stdio(data, errors)
    else:
        _validate_remote(data, errors, warnings)

    return ValidationResult(valid=True, errors=errors, warnings=warnings)


def _validate_stdio(data: dict[str, Any], errors: list[ValidationIssue]) -> None:
    command = data.get("command")
    if not isinstance(command, str) or not command.strip():
        errors.append(ValidationIssue(path="command", message="command is required"))

    args = data.get("args", [])
    if not isinstance(args, list) or not all(isinstance(arg, str) for arg in args):
        errors.append(ValidationIssue(path="args", message="args must be a list of strings"))

    env = data.get("env", {})
    if not isinstance(env, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in env.items()
    ):
        errors.append(ValidationIssue(path="env", message="env must map strings to strings"))


def _validate_remote(
    data: dict[str, Any],
    errors: list[ValidationIssue],
    warnings: list[ValidationIssue],
) -> None:
    url = data.get("url")
    if not isinstance(url, str) or not url.strip():
        errors.append(ValidationIssue(path="url", message="url is required"))
    else:
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL:
            parsed = None
        if parsed is None or parsed.scheme not in ("http", "https") or not parsed.host:
            errors.append(
                ValidationIssue(path="url", message=f"url is not a valid HTTP URL: {url}")
            )

    headers = data.get("headers", {})
    if not isinstance(headers, dict):
        errors.append(ValidationIssue(path="headers", message="headers must be a mapping"))

    oauth = data.get("oauth")
    if isinstance(oauth, dict):
        oauth = _normalize_keys(oauth, _OAUTH_ALIASES)
        for key in ("authorization_url", "token_url", "client_id", "redirect_uri"):
            if not oauth.get(key):
                errors.append(ValidationIssue(path=f"oauth.{key}", message=f"{key} is required"))
        for key in oauth:
            if key not in _OAUTH_FIELDS:
                errors.append(
                    ValidationIssue(path=f"oauth.{key}", message=f"Unknown field '{key}'")
                )

    try:
        auth_type = AuthType(data.get("auth_type", AuthType.NONE))
    except ValueError:
        allowed = ", ".join(a.value for a in AuthType)
        errors.append(
            ValidationIssue(path="auth_type", message=f"auth_type must be one of: {allowed}")
        )
        return

    required: tuple[str, ...] = ()
    if auth_type == AuthType.BEARER:
        required = ("bearer_token",)
    elif auth_type == AuthType.API_KEY:
        required = ("api_key",)
    elif auth_type == AuthType.BASIC:
        required = ("username", "password")
    elif auth_type == AuthType.OAUTH:
        if not data.get("oauth_token") and not data.get("oauth"):
            errors.append(
                ValidationIssue(
                    path="oauth_token",
                    message="oauth auth requires an access token or an OAuth client config",
                )
            )
        elif not data.get("oauth_token"):
            warnings.append(
                ValidationIssue(
                    path="oauth_token",
                    message="No OAuth access token yet; requests will be unauthenticated",
                    severity="warning",
                )
            )

    for key in required:
        if not data.get(key):
            errors.append(
                ValidationIssue(path=key, message=f"{key} is required for {auth_type.value} auth")
            )


def parse_server_config(data: dict[str, Any] | ServerConfig) -> ServerConfig:
    """Build a typed server definition from a raw mapping.

    Args:
        data: Raw definition, or an already typed config (returned as-is)

    Returns:
        StdioServerConfig, SSEServerConfig or HTTPServerConfig

    Raises:
        HubError(CONFIG_INVALID): If validation fails
    """
    if isinstance(data, StdioServerConfig | SSEServerConfig | HTTPServerConfig):
        return data

    validation = validate_server_config(data)
    if not validation.valid:
        raise create_error("CONFIG_INVALID", detail="; ".join(validation.error_messages()))

    values = _flatten_auth(_normalize_keys(data, _ALIASES))
    common: dict[str, Any] = {
        "id": values["id"],
        "name": values["name"],
        "description": values.get("description") or "",
    }
    for stamp in ("created_at", "updated_at"):
        if isinstance(values.get(stamp), datetime):
            common[stamp] = values[stamp]
        elif isinstance(values.get(stamp), str):
            common[stamp] = datetime.fromisoformat(values[stamp].replace("Z", "+00:00"))

    timeout = float(values.get("timeout", DEFAULT_TIMEOUT))
    transport = _transport_of(values)

    if transport == TransportType.STDIO:
        return StdioServerConfig(
            **common,
            command=values["command"],
            args=list(values.get("args") or []),
            env=dict(values.get("env") or {}),
            cwd=values.get("cwd"),
            timeout=timeout,
        )

    oauth = values.get("oauth")
    auth = AuthConfig(
        auth_type=AuthType(values.get("auth_type", AuthType.NONE)),
        bearer_token=values.get("bearer_token"),
        api_key=values.get("api_key"),
        api_key_header=values.get("api_key_header") or DEFAULT_API_KEY_HEADER,
        username=values.get("username"),
        password=values.get("password"),
        oauth_token=values.get("oauth_token"),
        oauth=(
            OAuthClientConfig(**_normalize_keys(oauth, _OAUTH_ALIASES))
            if isinstance(oauth, dict)
            else oauth
        ),
    )
    remote_cls = SSEServerConfig if transport == TransportType.SSE else HTTPServerConfig
    return remote_cls(
        **common,
        url=values["url"],
        headers=dict(values.get("headers") or {}),
        auth=auth,
        timeout=timeout,
    )
