"""Error factory for creating HubErrors from any exception type."""

from typing import Any

from .errors import HubError
from .matchers import ErrorMatcherChain, iter_exception_chain
from .registry import ErrorRegistry


class ErrorFactory:
    """Creates HubErrors from any exception type."""

    def __init__(
        self,
        registry: ErrorRegistry | None = None,
        matcher_chain: ErrorMatcherChain | None = None,
    ):
        """Initialize error factory.

        Args:
            registry: Error registry (defaults to new ErrorRegistry())
            matcher_chain: Matcher chain (defaults to new ErrorMatcherChain())
        """
        self.registry = registry or ErrorRegistry()
        self.matcher_chain = matcher_chain or ErrorMatcherChain()

    def from_exception(
        self,
        error: BaseException,
        server_id: str | None = None,
        tool_name: str | None = None,
        default_code: str | None = None,
        **context: Any,
    ) -> HubError:
        """Convert any exception to HubError.

        Args:
            error: Exception to convert
            server_id: Optional server identifier
            tool_name: Optional tool name
            default_code: Code used when no specific matcher applies
            **context: Extra template context

        Returns:
            HubError instance
        """
        # A HubError anywhere in the chain already carries the classification
        for candidate in iter_exception_chain(error):
            if isinstance(candidate, HubError):
                return candidate.with_context(server_id=server_id, tool_name=tool_name)

        match_result = self.matcher_chain.match(error, default_code=default_code)

        merged = {**context, **match_result.context}
        if server_id:
            merged["server_id"] = server_id
        if tool_name:
            merged["tool_name"] = tool_name

        hub_error = self.registry.create(code=match_result.code, context=merged)

        if match_result.retryable is not None:
            hub_error.retryable = match_result.retryable

        return hub_error

    def create(
        self,
        code: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> HubError:
        """Create HubError directly from code.

        Args:
            code: Error code
            context: Context variables for template interpolation
            **kwargs: Additional context variables

        Returns:
            HubError instance
        """
        merged_context = dict(context or {})
        merged_context.update(kwargs)

        return self.registry.create(code=code, context=merged_context)


# Convenience singleton
_default_factory: ErrorFactory | None = None


def get_error_factory() -> ErrorFactory:
    """Get default error factory singleton.

    Returns:
        Default ErrorFactory instance
    """
    global _default_factory  # noqa: PLW0603
    if _default_factory is None:
        _default_factory = ErrorFactory()
    return _default_factory


def create_error(code: str, **context: Any) -> HubError:
    """Convenience function to create error.

    Args:
        code: Error code
        **context: Context variables for template interpolation

    Returns:
        HubError instance
    """
    return get_error_factory().create(code, context)


def classify_exception(error: BaseException, **context: Any) -> HubError:
    """Convert an exception with the default factory.

    Args:
        error: Exception to convert
        **context: Passed to ErrorFactory.from_exception

    Returns:
        HubError instance
    """
    return get_error_factory().from_exception(error, **context)
