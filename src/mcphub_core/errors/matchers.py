"""Error matchers for converting transport and OS exceptions to HubErrors."""

import asyncio
import errno
from collections.abc import Iterator

import httpx
from mcp.shared.exceptions import McpError

from .errors import ErrorMatcher, MatchResult

AUTH_STATUS_CODES = (401, 403)


def iter_exception_chain(error: BaseException) -> Iterator[BaseException]:
    """Yield the error, its group members and its causes, depth first.

    anyio task groups inside the MCP client wrap transport failures in
    exception groups, so the interesting exception is often nested.
    """
    seen: set[int] = set()
    stack = [error]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, BaseExceptionGroup):
            stack.extend(reversed(current.exceptions))
        if current.__cause__ is not None:
            stack.append(current.__cause__)
        elif current.__context__ is not None and not current.__suppress_context__:
            stack.append(current.__context__)


class AuthErrorMatcher(ErrorMatcher):
    """Matches credential rejections (HTTP 401/403)."""

    def matches(self, error: BaseException) -> bool:
        return (
            isinstance(error, httpx.HTTPStatusError)
            and error.response.status_code in AUTH_STATUS_CODES
        )

    def extract(self, error: BaseException) -> MatchResult:
        assert isinstance(error, httpx.HTTPStatusError)
        status = error.response.status_code
        return MatchResult(
            code="AUTH_REJECTED",
            context={"detail": f"HTTP {status} from {error.request.url}", "status": status},
            retryable=False,
        )


class TimeoutErrorMatcher(ErrorMatcher):
    """Matches timeout errors."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException))

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(
            code="CONNECTION_TIMEOUT",
            context={"detail": str(error) or "timed out"},
        )


class SpawnErrorMatcher(ErrorMatcher):
    """Matches failures to launch a subprocess."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (FileNotFoundError, PermissionError)) or (
            isinstance(error, OSError) and error.errno in (errno.ENOENT, errno.EACCES)
        )

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(
            code="SPAWN_FAILED",
            context={"detail": str(error)},
            retryable=False,
        )


class NetworkErrorMatcher(ErrorMatcher):
    """Matches refused or unreachable network endpoints."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, (httpx.TransportError, ConnectionError))

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(
            code="CONNECTION_REFUSED",
            context={"detail": str(error) or type(error).__name__},
        )


class HTTPStatusErrorMatcher(ErrorMatcher):
    """Matches non-auth HTTP error responses."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, httpx.HTTPStatusError)

    def extract(self, error: BaseException) -> MatchResult:
        assert isinstance(error, httpx.HTTPStatusError)
        status = error.response.status_code
        return MatchResult(
            code="CONNECTION_FAILED",
            context={"detail": f"HTTP {status} from {error.request.url}", "status": status},
            retryable=status >= 500,
        )


class ProtocolErrorMatcher(ErrorMatcher):
    """Matches JSON-RPC errors returned by the server."""

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, McpError)

    def extract(self, error: BaseException) -> MatchResult:
        assert isinstance(error, McpError)
        return MatchResult(
            code="PROTOCOL_ERROR",
            context={"detail": error.error.message, "rpc_code": error.error.code},
            retryable=False,
        )


class GenericErrorMatcher(ErrorMatcher):
    """Fallback matcher for any exception."""

    def matches(self, error: BaseException) -> bool:
        return True

    def extract(self, error: BaseException) -> MatchResult:
        return MatchResult(
            code="INTERNAL_ERROR",
            context={"detail": str(error), "error_type": type(error).__name__},
            retryable=False,
        )


class ErrorMatcherChain:
    """Ordered chain of matchers. First match wins."""

    def __init__(self) -> None:
        """Initialize matcher chain with built-in matchers."""
        self.matchers: list[ErrorMatcher] = []
        self._load_builtin_matchers()

    def match(self, error: BaseException, default_code: str | None = None) -> MatchResult:
        """Find the first matcher that accepts any exception in the chain.

        Args:
            error: Exception to match
            default_code: Code to use instead of INTERNAL_ERROR when nothing specific matches

        Returns:
            MatchResult from first matching matcher
        """
        chain = list(iter_exception_chain(error))
        for matcher in self.matchers:
            if isinstance(matcher, GenericErrorMatcher):
                continue
            for candidate in chain:
                if matcher.matches(candidate):
                    return matcher.extract(candidate)

        result = GenericErrorMatcher().extract(error)
        if default_code:
            result.code = default_code
        return result

    def _load_builtin_matchers(self) -> None:
        """Load built-in matchers in priority order."""
        # Order matters - auth must win over the generic HTTP status matcher
        self.matchers = [
            AuthErrorMatcher(),
            TimeoutErrorMatcher(),
            SpawnErrorMatcher(),
            NetworkErrorMatcher(),
            HTTPStatusErrorMatcher(),
            ProtocolErrorMatcher(),
            GenericErrorMatcher(),  # Fallback - must be last
        ]
