"""Unit tests for HubLogger and its scoped loggers."""

import io
import json

import pytest

from mcphub_core.errors import create_error
from mcphub_core.logging import COMPONENTS, HubLogger, LogConfig
from mcphub_core.types import LogFormat, LogLevel


def _json_logger(**kwargs) -> tuple[HubLogger, io.StringIO]:
    stream = io.StringIO()
    config = LogConfig(format=LogFormat.JSON, output=stream, **kwargs)
    return HubLogger(config), stream


def _entries(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestLogConfig:
    """Tests for LogConfig defaults."""

    def test_all_components_enabled(self):
        config = LogConfig()
        assert set(config.components) == set(COMPONENTS)
        assert all(config.components.values())

    def test_explicit_components_kept(self):
        assert LogConfig(components={"tool": False}).components == {"tool": False}


class TestJSONFormat:
    """Tests for JSON output."""

    def test_entry_fields(self):
        logger, stream = _json_logger()
        logger.server("github", "GitHub").connecting("stdio")
        (entry,) = _entries(stream)
        assert entry["level"] == "INFO"
        assert entry["component"] == "connection"
        assert entry["server_id"] == "github"
        assert entry["event"] == "connecting"
        assert entry["transport"] == "stdio"
        assert entry["timestamp"].endswith("Z")
        assert "GitHub" in entry["message"]

    def test_level_threshold(self):
        logger, stream = _json_logger(level=LogLevel.WARN)
        server = logger.server("github")
        server.connecting("stdio")
        server.cleanup_failed(RuntimeError("pipe closed"))
        assert [e["level"] for e in _entries(stream)] == ["WARN"]

    def test_component_disabled(self):
        logger, stream = _json_logger(components={"connection": True, "tool": False})
        server = logger.server("github")
        server.tool_calling("search")
        server.disconnected()
        assert [e["component"] for e in _entries(stream)] == ["connection"]

    def test_failure_context(self):
        logger, stream = _json_logger()
        logger.server("github").failed(ConnectionRefusedError("refused"), error_count=2)
        (entry,) = _entries(stream)
        assert entry["level"] == "ERROR"
        assert entry["error_type"] == "ConnectionRefusedError"
        assert entry["error_count"] == 2


class TestToolEvents:
    """Tests for tool call logging."""

    def test_result_truncated(self):
        logger, stream = _json_logger(truncate_at=10)
        logger.server("github").tool_result("search", "x" * 50, duration_ms=1500)
        (entry,) = _entries(stream)
        assert entry["result"] == "x" * 10 + "..."
        assert "1.50s" in entry["message"]

    def test_results_hidden(self):
        logger, stream = _json_logger(show_results=False)
        logger.server("github").tool_result("search", "secret", duration_ms=5)
        assert "result" not in _entries(stream)[0]

    def test_arguments_included(self):
        logger, stream = _json_logger()
        logger.server("github").tool_calling("search", {"q": "mcp"})
        assert _entries(stream)[0]["arguments"] == {"q": "mcp"}


class TestInstallLogger:
    """Tests for installation events."""

    def test_stage(self):
        logger, stream = _json_logger()
        logger.install("abc", "npm").stage("downloading", 10, "Downloading demo")
        (entry,) = _entries(stream)
        assert entry["component"] == "install"
        assert entry["install_id"] == "abc"
        assert entry["source"] == "npm"
        assert entry["progress"] == 10
        assert entry["message"] == "[downloading] Downloading demo (10%)"

    def test_failed(self):
        logger, stream = _json_logger()
        error = create_error("INSTALL_FAILED", stage="installing", detail="npm exited 1")
        logger.install("abc", "github").failed("installing", error)
        (entry,) = _entries(stream)
        assert entry["event"] == "install_failed"
        assert entry["error_type"] == "HubError"
        assert "installing" in entry["message"]


class TestColoredFormat:
    """Tests for colored output."""

    def test_component_prefix(self):
        stream = io.StringIO()
        logger = HubLogger(LogConfig(output=stream))
        logger.install("abc", "npm").cancelled("extracting")
        line = stream.getvalue()
        assert "[INSTALL]" in line
        assert "cancelled during extracting" in line

    @pytest.mark.parametrize("show_params", [True, False])
    def test_context_toggle(self, show_params):
        stream = io.StringIO()
        logger = HubLogger(LogConfig(output=stream, show_params=show_params))
        logger.server("github").disconnected()
        assert ("server_id" in stream.getvalue()) is show_params

    def test_configure(self):
        stream = io.StringIO()
        logger = HubLogger(LogConfig(output=stream))
        logger.configure(LogConfig(output=stream, level=LogLevel.ERROR))
        logger.server("github").disconnected()
        assert stream.getvalue() == ""
