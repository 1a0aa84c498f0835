"""ANSI color codes for terminal output.

Usage:
    from mcphub_core.logging.colors import GREEN, RESET

    print(f"{GREEN}connected{RESET}")
"""

RESET = "\033[0m"

# Status colors (256-color palette)
GREEN = "\033[38;5;82m"
RED = "\033[38;5;196m"
YELLOW = "\033[38;5;226m"
ORANGE = "\033[38;5;208m"

# Informational colors
LIGHT_BLUE = "\033[38;5;153m"
CYAN = "\033[38;5;51m"
MAGENTA = "\033[38;5;201m"
VIOLET = "\033[38;5;141m"

# Per-component colors for the [COMPONENT] prefix
COMPONENT_COLORS = {
    "connection": MAGENTA,
    "tool": GREEN,
    "process": ORANGE,
    "install": VIOLET,
    "registry": CYAN,
    "cleanup": LIGHT_BLUE,
}

__all__ = [
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
