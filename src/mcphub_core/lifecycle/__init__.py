"""Process lifecycle - supervision of stdio server processes."""

from .process import ProcessManager, ServerProcess

__all__ = [
    "ProcessManager",
    "ServerProcess",
]
