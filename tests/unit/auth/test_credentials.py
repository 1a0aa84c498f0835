"""Unit tests for credential headers."""

import base64

from mcphub_core.auth import apply_credential, build_auth_headers, merge_headers
from mcphub_core.config import AuthConfig, HTTPServerConfig, SSEServerConfig
from mcphub_core.types import AuthType


class TestBuildAuthHeaders:
    """Tests for build_auth_headers."""

    def test_none(self):
        assert build_auth_headers(AuthConfig()) == {}

    def test_bearer(self):
        auth = AuthConfig(auth_type=AuthType.BEARER, bearer_token="t")
        assert build_auth_headers(auth) == {"Authorization": "Bearer t"}

    def test_api_key_custom_header(self):
        auth = AuthConfig(auth_type=AuthType.API_KEY, api_key="k", api_key_header="X-Token")
        assert build_auth_headers(auth) == {"X-Token": "k"}

    def test_basic(self):
        auth = AuthConfig(auth_type=AuthType.BASIC, username="user", password="pass")
        encoded = base64.b64encode(b"user:pass").decode()
        assert build_auth_headers(auth) == {"Authorization": f"Basic {encoded}"}

    def test_oauth_without_token(self):
        """Test an OAuth server without an access token sends nothing."""
        assert build_auth_headers(AuthConfig(auth_type=AuthType.OAUTH)) == {}


class TestMergeHeaders:
    """Tests for merge_headers."""

    def test_credential_wins(self):
        """Test credential headers override configured headers."""
        config = HTTPServerConfig(
            id="r",
            name="R",
            url="https://x.test/mcp",
            headers={"Authorization": "stale", "X-Trace": "1"},
            auth=AuthConfig(auth_type=AuthType.BEARER, bearer_token="fresh"),
        )
        assert merge_headers(config) == {"Authorization": "Bearer fresh", "X-Trace": "1"}


class TestApplyCredential:
    """Tests for apply_credential."""

    def test_stdio_unchanged(self, stdio_config):
        assert apply_credential(stdio_config, "secret") is stdio_config

    def test_missing_credential_unchanged(self, http_config):
        assert apply_credential(http_config, None) is http_config

    def test_default_is_bearer(self, http_config):
        updated = apply_credential(http_config, "secret")
        assert updated.auth.auth_type == AuthType.BEARER
        assert updated.auth.bearer_token == "secret"
        assert http_config.auth.bearer_token is None

    def test_oauth_receives_access_token(self):
        config = SSEServerConfig(
            id="r",
            name="R",
            url="https://x.test/sse",
            auth=AuthConfig(auth_type=AuthType.OAUTH),
        )
        updated = apply_credential(config, "access")
        assert updated.auth.oauth_token == "access"
        assert build_auth_headers(updated.auth) == {"Authorization": "Bearer access"}

    def test_api_key_receives_key(self):
        config = HTTPServerConfig(
            id="r",
            name="R",
            url="https://x.test/mcp",
            auth=AuthConfig(auth_type=AuthType.API_KEY),
        )
        assert apply_credential(config, "k").auth.api_key == "k"
