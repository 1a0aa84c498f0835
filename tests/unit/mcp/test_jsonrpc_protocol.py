"""Unit tests for JSON-RPC helpers."""

import json

import pytest

from mcphub_core.mcp.protocol import (
    METHOD_NOT_FOUND,
    JSONRPCMessage,
    RequestIdGenerator,
)


class TestBuilders:
    """Tests for message builders."""

    def test_request(self):
        msg = JSONRPCMessage.request("tools/list", {"cursor": "2"}, id=7)
        assert msg == {
            "jsonrpc": "2.0",
            "method": "tools/list",
            "id": 7,
            "params": {"cursor": "2"},
        }

    def test_request_without_params(self):
        assert "params" not in JSONRPCMessage.request("tools/list")

    def test_notification_has_no_id(self):
        msg = JSONRPCMessage.notification("notifications/initialized")
        assert "id" not in msg

    def test_error_response(self):
        msg = JSONRPCMessage.error_response(3, METHOD_NOT_FOUND, "Method not found")
        assert JSONRPCMessage.is_error(msg)
        assert JSONRPCMessage.get_error(msg)["code"] == -32601


class TestParse:
    """Tests for message parsing."""

    def test_bytes(self):
        msg = JSONRPCMessage.parse(b'{"jsonrpc": "2.0", "id": 1, "result": {}}')
        assert JSONRPCMessage.is_response(msg)
        assert JSONRPCMessage.get_result(msg) == {}

    def test_rejects_non_object(self):
        with pytest.raises(ValueError):
            JSONRPCMessage.parse("[1, 2]")

    def test_event_stream(self):
        """Test events split on blank lines with multi-line data joined."""
        first = {"jsonrpc": "2.0", "method": "notifications/progress"}
        second = {"jsonrpc": "2.0", "id": 2, "result": {"tools": []}}
        encoded = json.dumps(second, indent=1).splitlines()
        body = (
            f"event: message\ndata: {json.dumps(first)}\n\n"
            + "".join(f"data: {line}\n" for line in encoded)
            + "\n"
        )
        assert JSONRPCMessage.parse_event_stream(body) == [first, second]

    def test_event_stream_without_trailing_blank_line(self):
        body = 'data: {"jsonrpc": "2.0", "id": 1, "result": {}}'
        assert len(JSONRPCMessage.parse_event_stream(body)) == 1

    def test_event_stream_bad_json(self):
        with pytest.raises(ValueError):
            JSONRPCMessage.parse_event_stream("data: {nope\n\n")


class TestRequestIdGenerator:
    def test_monotonic(self):
        ids = RequestIdGenerator()
        assert [ids.next() for _ in range(3)] == [1, 2, 3]
