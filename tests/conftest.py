"""
Pytest configuration and shared fixtures for mcphub-core tests.
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
# Make the shared mocks importable as ``mocks``
sys.path.insert(0, str(Path(__file__).parent))

from mcphub_core.config import HTTPServerConfig, StdioServerConfig  # noqa: E402
from mcphub_core.logging import HubLogger, LogConfig  # noqa: E402
from mcphub_core.types import LogFormat, LogLevel  # noqa: E402

# =============================================================================
# Server Definition Fixtures
# =============================================================================


@pytest.fixture
def stdio_config() -> StdioServerConfig:
    """Stdio definition whose command is the running interpreter."""
    return StdioServerConfig(
        id="fs",
        name="Filesystem",
        command=sys.executable,
        args=["-c", "pass"],
    )


@pytest.fixture
def http_config() -> HTTPServerConfig:
    """Request/response definition pointing at the mock server URL."""
    return HTTPServerConfig(id="remote", name="Remote", url="http://mcp.test/mcp")


# =============================================================================
# Logger Fixtures
# =============================================================================


@pytest.fixture
def log_stream():
    """In-memory stream that collects logger output."""
    import io

    return io.StringIO()


@pytest.fixture
def hub_logger(log_stream) -> HubLogger:
    """JSON logger writing to ``log_stream``."""
    return HubLogger(LogConfig(level=LogLevel.DEBUG, format=LogFormat.JSON, output=log_stream))


# =============================================================================
# Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "property: Property-based tests")
    config.addinivalue_line("markers", "slow: Slow tests")
