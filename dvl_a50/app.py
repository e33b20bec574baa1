"""Long-running service that keeps a DVL session open and reports its health."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .adapters import TcpTransport, TransportError
from .config import DvlConfig, load_config
from .core import DeadReckoningReport, VelocityReport
from .driver import DvlA50Driver
from .health import HIGH_TEMPERATURE, DeviceHealth, HealthServer
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[DvlConfig], TcpTransport]


class AgentState(str, Enum):
    COLD_START = "cold_start"
    CONNECTING = "connecting"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    STOPPING = "stopping"


def _default_transport(config: DvlConfig) -> TcpTransport:
    return TcpTransport(
        config.device.host,
        config.device.port,
        connect_timeout=config.device.connect_timeout_seconds,
    )


class DvlMonitorApp:
    """Coordinates connection, driver and health endpoint lifecycle.

    The service connects once, streams telemetry into the health reporter
    and returns when the device closes the connection or the task is
    cancelled. Reconnection is left to the process supervisor.
    """

    def __init__(
        self,
        config: Optional[DvlConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self._config = config or load_config()
        self._transport_factory = transport_factory or _default_transport
        self._transport: Optional[TcpTransport] = None
        self._driver: Optional[DvlA50Driver] = None
        self._health = DeviceHealth(
            stale_after=self._config.health.stale_after_seconds
        )
        self._health_server: Optional[HealthServer] = None
        self._state = AgentState.COLD_START

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def health(self) -> DeviceHealth:
        return self._health

    @property
    def driver(self) -> Optional[DvlA50Driver]:
        return self._driver

    async def run(self) -> bool:
        """Run until the device hangs up.

        Returns False when the device could not be reached.
        """

        LOGGER.info("dvl-a50 starting with config: %s", self._config.path)
        await self._start_health_server()

        try:
            if not await self._start_session():
                return False
            await self._transition_state(AgentState.ACTIVE, detail="streaming")
            assert self._driver is not None
            await self._driver.wait_closed()
            await self._transition_state(
                AgentState.DISCONNECTED, detail="device closed the connection"
            )
            self._health.set_connection(False, "connection closed")
            return True
        except asyncio.CancelledError:
            LOGGER.info("dvl-a50 received shutdown signal")
            raise
        finally:
            await self._stop_services()

    @classmethod
    def start(cls, config: Optional[DvlConfig] = None) -> int:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            connected = asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("dvl-a50 received shutdown signal")
            return 0
        return 0 if connected else 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _transition_state(
        self, state: AgentState, *, detail: Optional[str] = None
    ) -> None:
        if state == self._state:
            return

        previous = self._state
        self._state = state
        message_detail = detail or state.value
        LOGGER.info(
            "Agent state transition %s -> %s (%s)",
            previous.value,
            state.value,
            message_detail,
        )
        self._health.set_agent_state(
            state.value,
            healthy=state == AgentState.ACTIVE,
            detail=message_detail,
        )

    async def _start_session(self) -> bool:
        device = self._config.device
        await self._transition_state(
            AgentState.CONNECTING, detail=f"{device.host}:{device.port}"
        )
        self._health.set_connection(False, "connecting")

        transport = self._transport_factory(self._config)
        try:
            await transport.connect()
        except TransportError as exc:
            LOGGER.error("%s", exc)
            self._health.set_connection(False, str(exc))
            await self._transition_state(AgentState.DISCONNECTED, detail="unreachable")
            return False

        self._transport = transport
        self._health.set_connection(True, f"{device.host}:{device.port}")

        driver = DvlA50Driver(
            transport,
            watchdog_interval=self._config.commands.watchdog_interval_seconds,
        )
        driver.attach_velocity_callback(self._on_velocity)
        driver.attach_dead_reckoning_callback(self._on_dead_reckoning)
        await driver.start()
        self._driver = driver
        self._health.track_requests(driver.pending_by_command)
        return True

    def _on_velocity(self, report: VelocityReport) -> None:
        LOGGER.debug(
            "Velocity vx=%.3f vy=%.3f vz=%.3f fom=%.4f alt=%.2f valid=%s",
            report.vx,
            report.vy,
            report.vz,
            report.fom,
            report.altitude,
            report.velocity_valid,
        )
        if report.status & HIGH_TEMPERATURE:
            LOGGER.warning("DVL reports high temperature; thermal shutdown imminent")
        self._health.record_velocity(report)

    def _on_dead_reckoning(self, report: DeadReckoningReport) -> None:
        LOGGER.debug(
            "Dead reckoning x=%.3f y=%.3f z=%.3f std=%.3f rpy=(%.1f, %.1f, %.1f)",
            report.x,
            report.y,
            report.z,
            report.std,
            report.roll,
            report.pitch,
            report.yaw,
        )
        self._health.record_dead_reckoning(report)

    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled or health.port <= 0:
            return

        server = HealthServer(self._health, health.host, health.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
        else:
            self._health_server = server

    async def _stop_services(self) -> None:
        previous = self._state
        await self._transition_state(AgentState.STOPPING, detail="shutdown requested")

        if self._driver is not None:
            await self._driver.stop()
            self._driver = None
            self._health.track_requests(None)

        if self._transport is not None:
            await self._transport.close()
            self._transport = None

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        LOGGER.info("dvl-a50 stopped (previous state: %s)", previous.value)
