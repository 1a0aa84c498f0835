"""Unit tests for structured hub errors and exception classification."""

import errno

import httpx
import pytest
from mcp.shared.exceptions import McpError
from mcp.types import ErrorData

from mcphub_core.errors import (
    ErrorCategory,
    ErrorRegistry,
    HubError,
    classify_exception,
    create_error,
    iter_exception_chain,
)


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://mcp.test/mcp")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestErrorRegistry:
    """Tests for template-based error creation."""

    def test_every_code_has_a_template(self):
        """Test the full taxonomy of codes is registered."""
        codes = set(ErrorRegistry().list_codes())
        expected = {
            "CONFIG_INVALID",
            "CONFIG_MISSING_FIELD",
            "CONNECTION_FAILED",
            "CONNECTION_REFUSED",
            "CONNECTION_TIMEOUT",
            "SPAWN_FAILED",
            "PROTOCOL_ERROR",
            "RATE_LIMITED",
            "AUTH_REJECTED",
            "TOOL_FAILED",
            "PROCESS_FAILED",
            "PROCESS_STOP_FAILED",
            "RESTART_LIMIT_EXCEEDED",
            "INSTALL_FAILED",
            "INSTALL_TIMEOUT",
            "SERVER_NOT_FOUND",
            "INSTALL_NOT_FOUND",
            "CATALOG_ENTRY_NOT_FOUND",
            "INTERNAL_ERROR",
        }
        assert expected <= codes

    def test_message_is_interpolated(self):
        """Test context values land in the message."""
        error = create_error("SERVER_NOT_FOUND", server_id="github")
        assert error.message == "No active connection for server 'github'"
        assert error.category == ErrorCategory.NOT_FOUND
        assert error.server_id == "github"

    def test_missing_context_is_readable(self):
        """Test a missing placeholder does not raise."""
        error = create_error("INSTALL_FAILED")
        assert "unknown" in error.message

    def test_unknown_code_raises(self):
        """Test unknown codes are rejected."""
        with pytest.raises(ValueError):
            ErrorRegistry().create("NOPE")

    def test_tool_failure_keeps_upstream_text(self):
        """Test the upstream tool message is carried verbatim."""
        error = create_error("TOOL_FAILED", message="disk is full", tool_name="write")
        assert error.message == "disk is full"
        assert error.classification == "ToolExecutionError"


class TestHubError:
    """Tests for HubError behavior."""

    def test_is_exception(self):
        """Test HubError can be raised and caught."""
        with pytest.raises(HubError) as exc_info:
            raise create_error("CONFIG_INVALID", detail="bad")
        assert str(exc_info.value) == "Invalid configuration: bad"

    def test_with_context_returns_copy(self):
        """Test with_context leaves the original untouched."""
        original = create_error("INSTALL_FAILED", detail="boom")
        tagged = original.with_context(stage="downloading")
        assert tagged.stage == "downloading"
        assert original.stage is None
        assert tagged.timestamp == original.timestamp

    @pytest.mark.parametrize(
        ("code", "classification"),
        [
            ("CONFIG_INVALID", "ConfigurationError"),
            ("CONNECTION_REFUSED", "ConnectionError"),
            ("AUTH_REJECTED", "AuthenticationError"),
            ("PROCESS_FAILED", "ProcessError"),
            ("INSTALL_TIMEOUT", "InstallationError"),
            ("INSTALL_NOT_FOUND", "NotFoundError"),
        ],
    )
    def test_classification(self, code, classification):
        """Test each category maps to its taxonomy name."""
        assert create_error(code).classification == classification

    def test_to_dict(self):
        """Test serialization includes code and classification."""
        data = create_error("AUTH_REJECTED", server_id="s").to_dict()
        assert data["code"] == "AUTH_REJECTED"
        assert data["category"] == "AUTHENTICATION"
        assert data["classification"] == "AuthenticationError"
        assert data["cause"] is None


class TestClassifyException:
    """Tests for the matcher chain."""

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_status_is_authentication(self, status):
        """Test 401/403 responses are authentication failures."""
        error = classify_exception(_status_error(status), server_id="remote")
        assert error.code == "AUTH_REJECTED"
        assert error.category == ErrorCategory.AUTHENTICATION
        assert error.retryable is False

    def test_server_error_is_connection(self):
        """Test 5xx responses are retryable connection failures."""
        error = classify_exception(_status_error(503), server_id="remote")
        assert error.code == "CONNECTION_FAILED"
        assert error.retryable is True

    def test_connect_error(self):
        """Test refused connections."""
        error = classify_exception(httpx.ConnectError("refused"), server_id="remote")
        assert error.code == "CONNECTION_REFUSED"
        assert error.category == ErrorCategory.CONNECTION

    def test_missing_executable_is_spawn_failure(self):
        """Test a missing command maps to SPAWN_FAILED."""
        error = classify_exception(
            FileNotFoundError(errno.ENOENT, "No such file", "nope"), server_id="fs"
        )
        assert error.code == "SPAWN_FAILED"
        assert error.classification == "ConnectionError"

    def test_timeout(self):
        """Test timeouts map to CONNECTION_TIMEOUT."""
        assert classify_exception(TimeoutError()).code == "CONNECTION_TIMEOUT"

    def test_mcp_error_is_protocol_error(self):
        """Test JSON-RPC errors map to PROTOCOL_ERROR."""
        error = classify_exception(McpError(ErrorData(code=-32000, message="nope")))
        assert error.code == "PROTOCOL_ERROR"

    def test_nested_in_exception_group(self):
        """Test the interesting error is found inside a group."""
        group = ExceptionGroup("task group", [RuntimeError("noise"), _status_error(401)])
        assert classify_exception(group).code == "AUTH_REJECTED"

    def test_follows_cause(self):
        """Test explicit causes are followed."""
        try:
            try:
                raise httpx.ConnectError("refused")
            except httpx.ConnectError as inner:
                raise RuntimeError("wrapped") from inner
        except RuntimeError as outer:
            assert classify_exception(outer).code == "CONNECTION_REFUSED"

    def test_existing_hub_error_is_kept(self):
        """Test a HubError in the chain wins over generic matching."""
        original = create_error("TOOL_FAILED", message="bad input")
        error = classify_exception(original, server_id="s")
        assert error.code == "TOOL_FAILED"
        assert error.server_id == "s"

    def test_default_code(self):
        """Test unmatched errors fall back to the default code."""
        error = classify_exception(ValueError("x"), default_code="CONNECTION_FAILED")
        assert error.code == "CONNECTION_FAILED"

    def test_generic_fallback(self):
        """Test unmatched errors without a default are internal."""
        error = classify_exception(ValueError("x"))
        assert error.code == "INTERNAL_ERROR"
        assert "ValueError" in (error.detail or "")


class TestIterExceptionChain:
    """Tests for chain traversal."""

    def test_handles_cycles(self):
        """Test a self-referencing chain terminates."""
        error = RuntimeError("loop")
        error.__cause__ = error
        assert list(iter_exception_chain(error)) == [error]
