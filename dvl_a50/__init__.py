"""Asyncio driver for the Water Linked DVL A50 Doppler velocity log."""

from .adapters import TcpTransport, TransportError
from .codec import MessageDecodeError, decode_message, encode_command
from .core import (
    DeadReckoningReport,
    RequestRegistry,
    RequestTimeout,
    Response,
    Result,
    TransducerReport,
    VelocityReport,
)
from .driver import DvlA50Driver

__all__ = [
    "DeadReckoningReport",
    "DvlA50Driver",
    "MessageDecodeError",
    "RequestRegistry",
    "RequestTimeout",
    "Response",
    "Result",
    "TcpTransport",
    "TransducerReport",
    "TransportError",
    "VelocityReport",
    "decode_message",
    "encode_command",
]
