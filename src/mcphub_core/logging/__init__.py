"""Hub logging - colored or JSON logging scoped to servers and installs."""

from .colors import (
    COMPONENT_COLORS,
    CYAN,
    GREEN,
    LIGHT_BLUE,
    MAGENTA,
    ORANGE,
    RED,
    RESET,
    VIOLET,
    YELLOW,
)
from .logger import (
    COMPONENTS,
    HubLogger,
    InstallLogger,
    LogConfig,
    ServerLogger,
)

__all__ = [
    # Logger classes
    "HubLogger",
    "ServerLogger",
    "InstallLogger",
    "LogConfig",
    "COMPONENTS",
    # Colors
    "RESET",
    "GREEN",
    "RED",
    "YELLOW",
    "ORANGE",
    "LIGHT_BLUE",
    "CYAN",
    "MAGENTA",
    "VIOLET",
    "COMPONENT_COLORS",
]
