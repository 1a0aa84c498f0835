"""mcphub-core - client connections to external MCP servers.

Transports, the connection registry, process lifecycle, installation,
the server catalog and background cleanup, wired by HubApplication.
"""

from mcphub_core.application import HubApplication, OperationResult

__version__ = "0.1.0"
__all__ = ["__version__", "HubApplication", "OperationResult"]
