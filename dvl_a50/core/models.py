"""Domain models for device acknowledgements and telemetry reports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True, slots=True)
class Response:
    """Acknowledgement outcome reported by the device for a command."""

    success: bool
    error_message: str = ""


@dataclass(frozen=True, slots=True)
class RequestTimeout:
    """Outcome of a request that was not acknowledged within its budget."""

    command: str
    timeout: float


Result = Union[Response, RequestTimeout]


@dataclass(frozen=True, slots=True)
class Acknowledgement:
    """Decoded reply to a previously issued command."""

    command: str
    success: bool
    error_message: str = ""

    def to_response(self) -> Response:
        return Response(success=self.success, error_message=self.error_message)


@dataclass(frozen=True, slots=True)
class TransducerReport:
    id: int  # 0-3
    velocity: float  # m/s
    distance: float  # m
    rssi: float  # dBm
    nsd: float  # dBm
    beam_valid: bool


@dataclass(frozen=True, slots=True)
class VelocityReport:
    """Velocity-and-transducer report.

    One report is streamed per velocity calculation, at 2-15 Hz depending on
    altitude. Axes are the DVL body frame, or the vehicle frame when a mounting
    rotation offset is configured.
    """

    time: float  # ms since the previous velocity report
    vx: float  # m/s
    vy: float
    vz: float
    fom: float  # figure of merit, m/s
    covariance: Tuple[Tuple[float, float, float], ...]  # 3x3, (m/s)^2
    altitude: float  # m
    transducers: Tuple[TransducerReport, ...]  # exactly 4
    velocity_valid: bool
    status: int  # 8 bit mask; bit 0 = high temperature
    time_of_validity: int  # unix time, microseconds
    time_of_transmission: int  # unix time, microseconds


@dataclass(frozen=True, slots=True)
class DeadReckoningReport:
    """Position and orientation relative to the start of the dead reckoning run."""

    ts: float  # unix time, seconds
    x: float  # m
    y: float
    z: float
    std: float  # position standard deviation, m
    roll: float  # degrees
    pitch: float
    yaw: float
    status: int  # 0 when there are no errors


Report = Union[VelocityReport, DeadReckoningReport]
DeviceMessage = Union[VelocityReport, DeadReckoningReport, Acknowledgement]
