"""Transport clients: stdio, SSE and HTTP request/response."""

from .base import TransportClient, transport_errors
from .factory import TransportFactory
from .http import HTTPTransportClient
from .session import FastMCPSession
from .sse import SSETransportClient
from .stdio import StdioTransportClient

__all__ = [
    "TransportClient",
    "TransportFactory",
    "FastMCPSession",
    "StdioTransportClient",
    "SSETransportClient",
    "HTTPTransportClient",
    "transport_errors",
]
