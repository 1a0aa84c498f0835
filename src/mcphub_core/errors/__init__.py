"""Hub error handling - Structured errors with context."""

from .errors import ErrorCategory, ErrorMatcher, ErrorTemplate, HubError, MatchResult
from .factory import ErrorFactory, classify_exception, create_error, get_error_factory
from .matchers import ErrorMatcherChain, iter_exception_chain
from .registry import ErrorRegistry

__all__ = [
    # Core error types
    "HubError",
    "ErrorCategory",
    "ErrorTemplate",
    "MatchResult",
    # Registry and factory
    "ErrorRegistry",
    "ErrorFactory",
    "ErrorMatcherChain",
    "ErrorMatcher",
    # Convenience functions
    "get_error_factory",
    "create_error",
    "classify_exception",
    "iter_exception_chain",
]
