"""JSON codec for the DVL A50 TCP protocol.

Every message is one JSON object per line. Incoming messages are decoded by
their ``type`` discriminator into a closed set of values:

- ``velocity``       -> :class:`VelocityReport`
- ``position_local`` -> :class:`DeadReckoningReport`
- ``response``       -> :class:`Acknowledgement` keyed by ``response_to``

An object without ``type`` that carries ``command`` and ``success`` is also
accepted as an acknowledgement keyed by ``command``.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping, Optional

from .core.models import (
    Acknowledgement,
    DeadReckoningReport,
    DeviceMessage,
    TransducerReport,
    VelocityReport,
)

VELOCITY_TYPE = "velocity"
DEAD_RECKONING_TYPE = "position_local"
RESPONSE_TYPE = "response"

TRANSDUCER_COUNT = 4


class MessageDecodeError(ValueError):
    """Raised when an incoming line is not a recognised device message."""


def decode_message(line: str) -> DeviceMessage:
    """Decode one incoming line into a report or acknowledgement."""

    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise MessageDecodeError(f"invalid JSON: {exc.msg}") from exc
    except (ValueError, RecursionError) as exc:
        # Oversized integer literals and deeply nested documents.
        raise MessageDecodeError(f"unparseable JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise MessageDecodeError(f"expected a JSON object, got {type(payload).__name__}")

    message_type = payload.get("type")
    if message_type == VELOCITY_TYPE:
        return decode_velocity_report(payload)
    if message_type == DEAD_RECKONING_TYPE:
        return decode_dead_reckoning_report(payload)
    if message_type == RESPONSE_TYPE:
        return _decode_acknowledgement(payload, "response_to")
    if message_type is None and "command" in payload and "success" in payload:
        return _decode_acknowledgement(payload, "command")

    raise MessageDecodeError(f"unrecognised message type: {message_type!r}")


def encode_command(command: str, fields: Optional[Mapping[str, Any]] = None) -> str:
    """Encode a command object; the transport adds the line terminator."""

    document: dict[str, Any] = {"command": command}
    if fields:
        for key, value in fields.items():
            if key == "command":
                raise ValueError("command fields may not override 'command'")
            document[key] = value
    return json.dumps(document, separators=(", ", ": "))


def decode_velocity_report(payload: Mapping[str, Any]) -> VelocityReport:
    transducers_raw = _require(payload, "transducers", list)
    if len(transducers_raw) != TRANSDUCER_COUNT:
        raise MessageDecodeError(
            f"expected {TRANSDUCER_COUNT} transducers, got {len(transducers_raw)}"
        )

    return VelocityReport(
        time=_number(payload, "time"),
        vx=_number(payload, "vx"),
        vy=_number(payload, "vy"),
        vz=_number(payload, "vz"),
        fom=_number(payload, "fom"),
        covariance=_decode_covariance(_require(payload, "covariance", list)),
        altitude=_number(payload, "altitude"),
        transducers=tuple(_decode_transducer(item) for item in transducers_raw),
        velocity_valid=_require(payload, "velocity_valid", bool),
        status=_integer(payload, "status"),
        time_of_validity=_integer(payload, "time_of_validity"),
        time_of_transmission=_integer(payload, "time_of_transmission"),
    )


def decode_dead_reckoning_report(payload: Mapping[str, Any]) -> DeadReckoningReport:
    return DeadReckoningReport(
        ts=_number(payload, "ts"),
        x=_number(payload, "x"),
        y=_number(payload, "y"),
        z=_number(payload, "z"),
        std=_number(payload, "std"),
        roll=_number(payload, "roll"),
        pitch=_number(payload, "pitch"),
        yaw=_number(payload, "yaw"),
        status=_integer(payload, "status"),
    )


def _decode_acknowledgement(payload: Mapping[str, Any], key: str) -> Acknowledgement:
    command = _require(payload, key, str)
    error_message = payload.get("error_message")
    if error_message is None:
        error_message = ""
    elif not isinstance(error_message, str):
        raise MessageDecodeError("field 'error_message' must be a string")

    return Acknowledgement(
        command=command,
        success=_require(payload, "success", bool),
        error_message=error_message,
    )


def _decode_transducer(item: Any) -> TransducerReport:
    if not isinstance(item, dict):
        raise MessageDecodeError("transducer entries must be JSON objects")
    return TransducerReport(
        id=_integer(item, "id"),
        velocity=_number(item, "velocity"),
        distance=_number(item, "distance"),
        rssi=_number(item, "rssi"),
        nsd=_number(item, "nsd"),
        beam_valid=_require(item, "beam_valid", bool),
    )


def _decode_covariance(rows: list) -> tuple:
    if len(rows) != 3 or any(not isinstance(row, list) or len(row) != 3 for row in rows):
        raise MessageDecodeError("covariance must be a 3x3 matrix")
    matrix = []
    for row in rows:
        matrix.append(
            tuple(_number({"covariance": value}, "covariance") for value in row)
        )
    return tuple(matrix)


def _require(payload: Mapping[str, Any], key: str, kind: type) -> Any:
    if key not in payload:
        raise MessageDecodeError(f"missing field {key!r}")
    value = payload[key]
    # bool is an int subclass; keep the two apart.
    if kind is not bool and isinstance(value, bool):
        raise MessageDecodeError(f"field {key!r} must be {kind.__name__}")
    if not isinstance(value, kind):
        raise MessageDecodeError(f"field {key!r} must be {kind.__name__}")
    return value


def _number(payload: Mapping[str, Any], key: str) -> float:
    if key not in payload:
        raise MessageDecodeError(f"missing field {key!r}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MessageDecodeError(f"field {key!r} must be a number")
    try:
        return float(value)
    except OverflowError as exc:
        raise MessageDecodeError(f"field {key!r} is out of range") from exc


def _integer(payload: Mapping[str, Any], key: str) -> int:
    _number(payload, key)
    value = payload[key]
    if isinstance(value, int):
        return value
    if not math.isfinite(value) or not value.is_integer():
        raise MessageDecodeError(f"field {key!r} must be an integer")
    return int(value)
