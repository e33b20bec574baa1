"""Health of a DVL session: link state, telemetry freshness and pending commands.

The service feeds :class:`DeviceHealth` from its driver callbacks;
:class:`HealthServer` publishes the aggregate as ``GET /healthz``.

A session is healthy while the service is active, the socket is open and
velocity reports keep arriving with bottom lock. Dead reckoning only counts
once the device has sent at least one position report, since it can be
switched off on the device.
"""

from __future__ import annotations

import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from aiohttp import web

from . import constants
from .core import DeadReckoningReport, VelocityReport

LOGGER = logging.getLogger(__name__)

PendingProvider = Callable[[], Mapping[str, int]]

VELOCITY_STREAM = "velocity"
DEAD_RECKONING_STREAM = "dead_reckoning"

# Bit 0 of the velocity report status word.
HIGH_TEMPERATURE = 0x01


@dataclass(slots=True)
class StreamStatus:
    """Freshness and validity of one telemetry stream."""

    reports: int = 0
    last_seen: Optional[float] = None
    valid: bool = False
    detail: Optional[str] = None

    def record(self, now: float, valid: bool, detail: Optional[str]) -> None:
        self.reports += 1
        self.last_seen = now
        self.valid = valid
        self.detail = detail

    def age(self, now: float) -> Optional[float]:
        if self.last_seen is None:
            return None
        return max(0.0, now - self.last_seen)

    def is_fresh(self, now: float, stale_after: float) -> bool:
        age = self.age(now)
        return age is not None and age <= stale_after

    def as_dict(self, now: float, stale_after: float) -> Dict[str, object]:
        age = self.age(now)
        fresh = self.is_fresh(now, stale_after)
        return {
            "healthy": fresh and self.valid,
            "reports": self.reports,
            "valid": self.valid,
            "stale": not fresh,
            "ageSeconds": None if age is None else round(age, 3),
            "detail": self.detail,
        }


class DeviceHealth:
    """Aggregated view of one DVL session.

    All methods are synchronous and expected to run on the event loop that
    owns the driver.
    """

    def __init__(
        self,
        *,
        stale_after: float = constants.DEFAULT_REPORT_STALE_AFTER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if stale_after <= 0:
            raise ValueError("stale_after must be positive")

        self._stale_after = stale_after
        self._clock = clock

        self._state = "cold_start"
        self._state_healthy = False
        self._state_detail: Optional[str] = None

        self._connected = False
        self._connection_detail: Optional[str] = "not connected"

        self._streams: Dict[str, StreamStatus] = {
            VELOCITY_STREAM: StreamStatus(),
            DEAD_RECKONING_STREAM: StreamStatus(),
        }
        self._pending: Optional[PendingProvider] = None

    def set_agent_state(
        self, state: str, *, healthy: bool, detail: Optional[str] = None
    ) -> None:
        self._state = state
        self._state_healthy = healthy
        self._state_detail = detail

    def set_connection(self, connected: bool, detail: Optional[str] = None) -> None:
        self._connected = connected
        self._connection_detail = detail

    def track_requests(self, provider: Optional[PendingProvider]) -> None:
        """Report pending commands from ``provider``; ``None`` stops tracking."""
        self._pending = provider

    def record_velocity(self, report: VelocityReport) -> None:
        problems = []
        if not report.velocity_valid:
            problems.append("no bottom lock")
        if report.status & HIGH_TEMPERATURE:
            problems.append("high temperature")
        self._streams[VELOCITY_STREAM].record(
            self._clock(), not problems, ", ".join(problems) or None
        )

    def record_dead_reckoning(self, report: DeadReckoningReport) -> None:
        ok = report.status == 0
        self._streams[DEAD_RECKONING_STREAM].record(
            self._clock(), ok, None if ok else f"status={report.status}"
        )

    def reports(self, stream: str) -> int:
        return self._streams[stream].reports

    def is_healthy(self) -> bool:
        now = self._clock()
        velocity = self._streams[VELOCITY_STREAM]
        dead_reckoning = self._streams[DEAD_RECKONING_STREAM]

        if not (self._state_healthy and self._connected):
            return False
        if not (velocity.valid and velocity.is_fresh(now, self._stale_after)):
            return False
        if dead_reckoning.reports and not (
            dead_reckoning.valid and dead_reckoning.is_fresh(now, self._stale_after)
        ):
            return False
        return True

    def snapshot(self) -> Dict[str, object]:
        now = self._clock()
        return {
            "status": "ok" if self.is_healthy() else "degraded",
            "agentState": {
                "state": self._state,
                "healthy": self._state_healthy,
                "detail": self._state_detail,
            },
            "connection": {
                "connected": self._connected,
                "detail": self._connection_detail,
            },
            "telemetry": {
                name: stream.as_dict(now, self._stale_after)
                for name, stream in self._streams.items()
            },
            "pendingRequests": dict(self._pending()) if self._pending else {},
        }


class HealthServer:
    """Serves :meth:`DeviceHealth.snapshot` on ``/healthz``; 503 while degraded."""

    def __init__(self, health: DeviceHealth, host: str, port: int) -> None:
        self._health = health
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Health endpoint listening on http://%s:%s/healthz", self._host, self._port
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = self._health.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)
