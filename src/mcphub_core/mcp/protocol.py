"""JSON-RPC protocol helpers for the request/response transport."""

import itertools
import json
from typing import Any

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class RequestIdGenerator:
    """Monotonic request ids for one client."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next(self) -> int:
        return next(self._counter)


class JSONRPCMessage:
    """JSON-RPC 2.0 message builder and parser."""

    @staticmethod
    def request(method: str, params: dict[str, Any] | None = None, id: int = 1) -> dict[str, Any]:
        """Build a JSON-RPC request.

        Args:
            method: Method name (e.g., "initialize", "tools/list", "tools/call")
            params: Optional parameters
            id: Request ID

        Returns:
            JSON-RPC request dict
        """
        msg: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
            "id": id,
        }
        if params is not None:
            msg["params"] = params
        return msg

    @staticmethod
    def notification(method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build a JSON-RPC notification (no response expected).

        Args:
            method: Method name
            params: Optional parameters

        Returns:
            JSON-RPC notification dict
        """
        msg: dict[str, Any] = {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
        }
        if params is not None:
            msg["params"] = params
        return msg

    @staticmethod
    def success_response(id: int, result: Any) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "result": result,
        }

    @staticmethod
    def error_response(id: int | None, code: int, message: str, data: Any = None) -> dict[str, Any]:
        """Build a JSON-RPC error response.

        Args:
            id: Request ID (None when the request could not be parsed)
            code: Error code
            message: Error message
            data: Optional error data

        Returns:
            JSON-RPC response dict
        """
        error: dict[str, Any] = {
            "code": code,
            "message": message,
        }
        if data is not None:
            error["data"] = data

        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": id,
            "error": error,
        }

    @staticmethod
    def parse(message: str | bytes) -> dict[str, Any]:
        """Parse a JSON-RPC message.

        Raises:
            ValueError: If message is not a JSON object
        """
        if isinstance(message, bytes):
            message = message.decode("utf-8")
        parsed = json.loads(message)
        if not isinstance(parsed, dict):
            msg = f"Expected a JSON-RPC object, got {type(parsed).__name__}"
            raise ValueError(msg)
        return parsed

    @staticmethod
    def parse_event_stream(body: str) -> list[dict[str, Any]]:
        """Parse the JSON-RPC messages carried by a ``text/event-stream`` body.

        Each event's ``data:`` lines are joined with newlines before decoding.

        Raises:
            ValueError: If an event's data is not valid JSON
        """
        messages: list[dict[str, Any]] = []
        data_lines: list[str] = []

        for line in body.splitlines() + [""]:
            if not line:
                if data_lines:
                    messages.append(JSONRPCMessage.parse("\n".join(data_lines)))
                    data_lines = []
                continue
            if line.startswith("data:"):
                data_lines.append(line[5:].removeprefix(" "))

        return messages

    @staticmethod
    def is_response(message: dict[str, Any]) -> bool:
        return "result" in message or "error" in message

    @staticmethod
    def is_error(message: dict[str, Any]) -> bool:
        return "error" in message

    @staticmethod
    def get_result(message: dict[str, Any]) -> dict[str, Any]:
        """Extract result from response message.

        Raises:
            KeyError: If message has no result
        """
        result: dict[str, Any] = message["result"]
        return result

    @staticmethod
    def get_error(message: dict[str, Any]) -> dict[str, Any]:
        """Extract error from error response.

        Raises:
            KeyError: If message has no error
        """
        error: dict[str, Any] = message["error"]
        return error
