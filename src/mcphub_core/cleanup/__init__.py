"""Background resource cleanup."""

from .manager import CleanupReport, ResourceCleanup

__all__ = ["ResourceCleanup", "CleanupReport"]
