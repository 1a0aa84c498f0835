"""Credential merging for remote transports."""

import base64
from dataclasses import replace

from mcphub_core.config.servers import (
    AuthConfig,
    RemoteServerConfig,
    ServerConfig,
    StdioServerConfig,
)
from mcphub_core.types import AuthType


def build_auth_headers(auth: AuthConfig) -> dict[str, str]:
    """Headers carrying the configured credential.

    Args:
        auth: Auth settings of a remote server

    Returns:
        Header mapping (empty for AuthType.NONE or a missing credential)
    """
    if auth.auth_type == AuthType.BEARER and auth.bearer_token:
        return {"Authorization": f"Bearer {auth.bearer_token}"}
    if auth.auth_type == AuthType.API_KEY and auth.api_key:
        return {auth.api_key_header: auth.api_key}
    if auth.auth_type == AuthType.BASIC and auth.username is not None:
        raw = f"{auth.username}:{auth.password or ''}".encode()
        return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}
    if auth.auth_type == AuthType.OAUTH and auth.oauth_token:
        return {"Authorization": f"Bearer {auth.oauth_token}"}
    return {}


def merge_headers(config: RemoteServerConfig) -> dict[str, str]:
    """Configured headers with credential headers applied on top."""
    headers = dict(config.headers)
    headers.update(build_auth_headers(config.auth))
    return headers


def apply_credential(config: ServerConfig, credential: str | None) -> ServerConfig:
    """Return a copy of ``config`` carrying a caller-supplied credential.

    OAuth servers receive it as the access token, API-key servers as the key,
    everything else as a bearer token. Stdio servers are returned unchanged.
    """
    if not credential or isinstance(config, StdioServerConfig):
        return config

    auth = config.auth
    if auth.auth_type == AuthType.OAUTH:
        new_auth = replace(auth, oauth_token=credential)
    elif auth.auth_type == AuthType.API_KEY:
        new_auth = replace(auth, api_key=credential)
    else:
        new_auth = replace(auth, auth_type=AuthType.BEARER, bearer_token=credential)
    return replace(config, auth=new_auth)
