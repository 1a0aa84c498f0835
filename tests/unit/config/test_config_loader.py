"""Unit tests for hub configuration loading."""

import pytest

from mcphub_core.config import ConfigLoader, HubConfig, deep_merge, resolve_env_vars
from mcphub_core.errors import HubError
from mcphub_core.types import LogFormat, RateLimitStrategy


class TestResolveEnvVars:
    """Tests for ${VAR} substitution."""

    def test_set_variable(self, monkeypatch):
        monkeypatch.setenv("MCPHUB_TEST_TOKEN", "abc")
        assert resolve_env_vars("Bearer ${MCPHUB_TEST_TOKEN}") == "Bearer abc"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("MCPHUB_TEST_MISSING", raising=False)
        assert resolve_env_vars("${MCPHUB_TEST_MISSING:-fallback}") == "fallback"

    def test_required_message(self, monkeypatch):
        monkeypatch.delenv("MCPHUB_TEST_MISSING", raising=False)
        with pytest.raises(HubError) as exc_info:
            resolve_env_vars("${MCPHUB_TEST_MISSING:?set the token}")
        assert "set the token" in exc_info.value.message

    def test_required_without_message(self, monkeypatch):
        monkeypatch.delenv("MCPHUB_TEST_MISSING", raising=False)
        with pytest.raises(HubError):
            resolve_env_vars("${MCPHUB_TEST_MISSING}")


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested(self):
        merged = deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})
        assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_defaults(self, monkeypatch):
        """Test defaults match the documented values."""
        monkeypatch.delenv("MCP_INSTALL_DIR", raising=False)
        config = ConfigLoader().load_defaults()
        assert isinstance(config, HubConfig)
        assert config.process.grace_period == 10.0
        assert config.registry.cache_ttl == 3600.0
        assert config.registry.page_size == 20
        assert config.rate_limit.max_requests == 100
        assert config.pool.max_idle_time == 60.0
        assert config.cleanup.oauth_state_max_age == 3600.0
        assert config.registry.github_search_enabled is False
        assert config.process.max_restart_attempts == 3
        assert config.health.enabled is False
        assert config.health.check_interval == 30.0
        assert config.health.timeout == 5.0
        assert config.health.max_retries == 3
        assert config.health.retry_delay == 1.0

    def test_load_yaml(self, tmp_path, monkeypatch):
        """Test a YAML file with env references."""
        monkeypatch.delenv("MCPHUB_TEST_QUERY", raising=False)
        monkeypatch.delenv("MCP_INSTALL_DIR", raising=False)
        path = tmp_path / "mcphub.yaml"
        path.write_text(
            "registry:\n"
            "  page_size: 5\n"
            "  npm_query: ${MCPHUB_TEST_QUERY:-mcp}\n"
            "rate_limit:\n"
            "  strategy: token-bucket\n"
            "logging:\n"
            "  format: json\n"
        )
        config = ConfigLoader().load(path)
        assert config.registry.page_size == 5
        assert config.registry.npm_query == "mcp"
        assert config.rate_limit.strategy == RateLimitStrategy.TOKEN_BUCKET
        assert config.logging.format == LogFormat.JSON

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MCP_INSTALL_DIR", raising=False)
        config = ConfigLoader().load(tmp_path / "absent.yaml")
        assert config == HubConfig()

    def test_missing_file_without_defaults(self, tmp_path):
        with pytest.raises(HubError):
            ConfigLoader().load(tmp_path / "absent.yaml", use_defaults=False)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("registry: [unclosed\n")
        with pytest.raises(HubError) as exc_info:
            ConfigLoader().load(path)
        assert exc_info.value.code == "CONFIG_INVALID"

    def test_config_path_env(self, tmp_path, monkeypatch):
        path = tmp_path / "from-env.yaml"
        path.write_text("process:\n  grace_period: 2\n")
        monkeypatch.setenv("MCPHUB_CONFIG_PATH", str(path))
        assert ConfigLoader().load().process.grace_period == 2

    def test_install_dir_env_override(self, monkeypatch):
        monkeypatch.setenv("MCP_INSTALL_DIR", "/opt/servers")
        config = ConfigLoader().load_from_dict({"installer": {"install_dir": "elsewhere"}})
        assert config.installer.install_dir == "/opt/servers"

    def test_health_section(self):
        config = ConfigLoader().load_from_dict(
            {"health": {"enabled": True, "check_interval": 10, "max_retries": 5}}
        )
        assert config.health.enabled is True
        assert config.health.check_interval == 10
        assert config.health.max_retries == 5
        assert config.health.timeout == 5.0

    def test_get_before_load(self):
        with pytest.raises(HubError):
            ConfigLoader().get()


class TestConfigValidation:
    """Tests for ConfigLoader.validate."""

    def test_unknown_key_is_warning(self):
        result = ConfigLoader().validate({"telemetry": {}})
        assert result.valid
        assert result.warnings[0].path == "telemetry"

    def test_non_positive_timeout(self):
        result = ConfigLoader().validate({"connection": {"connect_timeout": 0}})
        assert not result.valid
        assert result.errors[0].path == "connection.connect_timeout"

    def test_bool_is_not_a_number(self):
        result = ConfigLoader().validate({"pool": {"max_connections": True}})
        assert not result.valid

    def test_bad_enum(self):
        result = ConfigLoader().validate({"logging": {"level": "LOUD"}})
        assert not result.valid

    def test_section_must_be_mapping(self):
        result = ConfigLoader().validate({"registry": 3})
        assert not result.valid

    def test_load_rejects_invalid(self):
        with pytest.raises(HubError) as exc_info:
            ConfigLoader().load_from_dict({"process": {"grace_period": -1}})
        assert "grace_period" in (exc_info.value.detail or "")

    def test_non_positive_health_timeout(self):
        result = ConfigLoader().validate({"health": {"timeout": 0}})
        assert not result.valid
        assert result.errors[0].path == "health.timeout"
