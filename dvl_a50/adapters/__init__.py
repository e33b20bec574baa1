"""Adapter modules for external integrations."""

from .tcp import TcpTransport, TransportError

__all__ = [
    "TcpTransport",
    "TransportError",
]
