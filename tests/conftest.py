import asyncio
import copy
import json
from typing import Any, Optional

import pytest


class FakeTransport:
    """In-memory transport; lines fed by the test are read by the poll task."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.fail_send = False
        self.connect_error: Optional[Exception] = None
        self.idle = asyncio.Event()
        self._lines: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._connected = True

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self._connected = True

    def send(self, text: str) -> None:
        if self.fail_send:
            raise ConnectionError("socket closed")
        self.sent.append(text)

    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(item) for item in self.sent]

    def feed(self, line: str) -> None:
        self.idle.clear()
        self._lines.put_nowait(line)

    def feed_json(self, payload: dict[str, Any]) -> None:
        self.feed(json.dumps(payload))

    def hang_up(self) -> None:
        self.idle.clear()
        self._lines.put_nowait(None)

    async def settle(self) -> None:
        """Wait until the poll task has handled every fed line."""
        await asyncio.wait_for(self.idle.wait(), timeout=1.0)

    async def receive_line(self) -> Optional[str]:
        if self._lines.empty():
            self.idle.set()
        line = await self._lines.get()
        self.idle.clear()
        if line is None:
            self._connected = False
            self.idle.set()
        return line

    async def drain(self) -> None:
        return None

    async def close(self) -> None:
        if self._connected:
            self.hang_up()
        self._connected = False


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


VELOCITY_PAYLOAD: dict[str, Any] = {
    "time": 106.3935,
    "vx": -3.713e-05,
    "vy": 5.317e-05,
    "vz": 2.743e-05,
    "fom": 0.000344,
    "covariance": [
        [2.63e-07, -1.9e-08, -1.1e-08],
        [-1.9e-08, 2.69e-07, 3e-09],
        [-1.1e-08, 3e-09, 1.5e-08],
    ],
    "altitude": 0.35,
    "transducers": [
        {
            "id": index,
            "velocity": 0.00085 * (index + 1),
            "distance": 0.42 + index * 0.01,
            "rssi": -30.5 - index,
            "nsd": -88.2,
            "beam_valid": True,
        }
        for index in range(4)
    ],
    "velocity_valid": True,
    "status": 0,
    "format": "json_v3.1",
    "type": "velocity",
    "time_of_validity": 1638191471563017,
    "time_of_transmission": 1638191471752336,
}

DEAD_RECKONING_PAYLOAD: dict[str, Any] = {
    "ts": 49056.809,
    "x": 12.43563,
    "y": 64.40947,
    "z": 1.0019,
    "std": 0.31363,
    "roll": 20.4,
    "pitch": -0.8,
    "yaw": 136.0,
    "type": "position_local",
    "status": 0,
    "format": "json_v3.1",
}


def ack(command: str, success: bool = True, error_message: str = "") -> dict[str, Any]:
    return {"command": command, "success": success, "error_message": error_message}


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def velocity_payload() -> dict[str, Any]:
    return copy.deepcopy(VELOCITY_PAYLOAD)


@pytest.fixture
def dead_reckoning_payload() -> dict[str, Any]:
    return copy.deepcopy(DEAD_RECKONING_PAYLOAD)


@pytest.fixture
def make_ack():
    return ack
