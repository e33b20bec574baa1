"""Core primitives for the DVL A50 driver."""

from .models import (
    Acknowledgement,
    DeadReckoningReport,
    DeviceMessage,
    Report,
    RequestTimeout,
    Response,
    Result,
    TransducerReport,
    VelocityReport,
)
from .protocols import DeadReckoningCallback, Transport, VelocityCallback
from .registry import PendingRequest, RequestRegistry

__all__ = [
    "Acknowledgement",
    "DeadReckoningCallback",
    "DeadReckoningReport",
    "DeviceMessage",
    "PendingRequest",
    "Report",
    "RequestRegistry",
    "RequestTimeout",
    "Response",
    "Result",
    "TransducerReport",
    "Transport",
    "VelocityCallback",
    "VelocityReport",
]
