"""Asynchronous driver for the Water Linked DVL A50.

A single socket carries two unrelated classes of message: acknowledgements to
commands this driver sent, and telemetry the device pushes on its own. The
driver runs two tasks over it:

- the poll task reads one line at a time, routes reports to the attached
  callbacks and settles pending requests from acknowledgements;
- the watchdog task wakes every ``watchdog_interval`` seconds and expires
  requests that have waited longer than their timeout.

Command methods return an ``asyncio.Future`` that resolves to a
:class:`Response` or a :class:`RequestTimeout`, never both.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import math
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from . import constants
from .codec import MessageDecodeError, decode_message, encode_command
from .core import (
    Acknowledgement,
    DeadReckoningCallback,
    DeadReckoningReport,
    RequestRegistry,
    Result,
    Transport,
    VelocityCallback,
    VelocityReport,
)

LOGGER = logging.getLogger(__name__)

ConfigFragment = Union[Mapping[str, Any], str]


class DvlA50Driver:
    """Command and telemetry multiplexer for one DVL connection."""

    def __init__(
        self,
        transport: Transport,
        *,
        watchdog_interval: float = constants.DEFAULT_WATCHDOG_INTERVAL,
        registry: Optional[RequestRegistry] = None,
    ) -> None:
        if watchdog_interval <= 0:
            raise ValueError("watchdog_interval must be positive")

        self._transport = transport
        self._watchdog_interval = watchdog_interval
        self._registry = registry or RequestRegistry()

        self._velocity_callback: Optional[VelocityCallback] = None
        self._dead_reckoning_callback: Optional[DeadReckoningCallback] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._watchdog_task: Optional[asyncio.Task[None]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self._watchdog_task is not None and not self._watchdog_task.done()

    @property
    def is_receiving(self) -> bool:
        """Whether the poll task is still reading from the transport."""
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> None:
        """Start the poll and watchdog tasks on the running loop."""

        if self._poll_task is not None:
            return

        self._loop = asyncio.get_running_loop()
        self._poll_task = asyncio.create_task(self._poll_loop(), name="dvl.poll")
        self._watchdog_task = asyncio.create_task(
            self._watchdog_loop(), name="dvl.watchdog"
        )
        await asyncio.sleep(0)

    async def stop(self) -> None:
        """Stop both tasks and expire every request that is still pending."""

        for task in (self._poll_task, self._watchdog_task):
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None
        self._watchdog_task = None

        abandoned = self._registry.sweep_timeouts(math.inf)
        if abandoned:
            LOGGER.info("Expired %d pending request(s) on shutdown", len(abandoned))

    async def wait_closed(self) -> None:
        """Wait until the poll task has exited, e.g. because the device hung up."""

        task = self._poll_task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(task)

    async def __aenter__(self) -> "DvlA50Driver":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def calibrate_gyro(
        self, timeout: float = constants.DEFAULT_COMMAND_TIMEOUT
    ) -> asyncio.Future[Result]:
        """Calibrate the DVL gyroscope."""
        return self._send_request(constants.CALIBRATE_GYRO, None, timeout)

    def trigger_ping(
        self, timeout: float = constants.DEFAULT_COMMAND_TIMEOUT
    ) -> asyncio.Future[Result]:
        """Trigger one acoustic ping.

        Only meaningful when the device is configured with
        ``acoustic_enabled = false``. The device queues up to 15 external
        triggers and pings them in quick succession; this driver does not cap
        how many are outstanding.
        """
        return self._send_request(constants.TRIGGER_PING, None, timeout)

    def reset_dead_reckoning(
        self, timeout: float = constants.DEFAULT_COMMAND_TIMEOUT
    ) -> asyncio.Future[Result]:
        return self._send_request(constants.RESET_DEAD_RECKONING, None, timeout)

    def set_config(
        self,
        config: ConfigFragment,
        timeout: float = constants.DEFAULT_COMMAND_TIMEOUT,
    ) -> asyncio.Future[Result]:
        """Apply a configuration fragment.

        Args:
            config: Fields merged into the command object, typically
                ``{"parameters": {"speed_of_sound": 1480}}``. A JSON member
                list such as ``'"parameters": {"speed_of_sound": 1480}'`` is
                accepted too. The contents are not validated.
            timeout: Seconds to wait for the acknowledgement.
        """
        if isinstance(config, str):
            try:
                fields = json.loads("{" + config + "}")
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid configuration fragment: {exc.msg}") from exc
        else:
            fields = dict(config)
        return self._send_request(constants.SET_CONFIG, fields, timeout)

    def pending_count(self, command: Optional[str] = None) -> int:
        return self._registry.pending_count(command)

    def pending_by_command(self) -> dict[str, int]:
        return self._registry.pending_by_command()

    # ------------------------------------------------------------------
    # Telemetry callbacks
    # ------------------------------------------------------------------
    def attach_velocity_callback(self, callback: VelocityCallback) -> None:
        """Route velocity reports to ``callback``, replacing any previous one."""
        self._velocity_callback = callback

    def attach_dead_reckoning_callback(self, callback: DeadReckoningCallback) -> None:
        """Route dead reckoning reports to ``callback``, replacing any previous one."""
        self._dead_reckoning_callback = callback

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _send_request(
        self,
        command: str,
        fields: Optional[Mapping[str, Any]],
        timeout: float,
    ) -> asyncio.Future[Result]:
        if not self.is_running:
            # Requests only expire while the watchdog task runs.
            raise RuntimeError(f"Cannot send {command}: driver is not running")

        message = encode_command(command, fields)
        handle = self._registry.enqueue(command, timeout, loop=self._loop)

        try:
            self._transport.send(message)
        except Exception as exc:
            # The request stays queued and resolves through the watchdog.
            LOGGER.warning("Failed to send %s command: %s", command, exc)

        return handle

    async def _poll_loop(self) -> None:
        while True:
            try:
                line = await self._transport.receive_line()
            except asyncio.CancelledError:
                raise
            except OSError as exc:
                LOGGER.warning("DVL connection error: %s", exc)
                return
            except Exception:
                LOGGER.exception("DVL receive failed")
                return

            if line is None:
                LOGGER.info("DVL closed the connection")
                return

            await self._dispatch(line)

    async def _dispatch(self, line: str) -> None:
        if not line.strip():
            return

        try:
            message = decode_message(line)
        except MessageDecodeError as exc:
            LOGGER.debug("Dropping unrecognised DVL message (%s): %.200s", exc, line)
            return
        except Exception:
            LOGGER.exception("Failed to decode DVL message: %.200s", line)
            return

        if isinstance(message, Acknowledgement):
            self._handle_acknowledgement(message)
        elif isinstance(message, VelocityReport):
            await self._invoke(self._velocity_callback, message)
        elif isinstance(message, DeadReckoningReport):
            await self._invoke(self._dead_reckoning_callback, message)

    def _handle_acknowledgement(self, ack: Acknowledgement) -> None:
        if not self._registry.resolve_oldest(ack.command, ack.to_response()):
            LOGGER.debug("Dropping %s acknowledgement with no pending request", ack.command)
            return

        if not ack.success:
            LOGGER.info("DVL rejected %s: %s", ack.command, ack.error_message)

    async def _invoke(
        self,
        callback: Optional[Callable[[Any], Awaitable[None] | None]],
        report: Any,
    ) -> None:
        if callback is None:
            return
        try:
            result = callback(report)
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("DVL %s callback failed", type(report).__name__)

    async def _watchdog_loop(self) -> None:
        while True:
            await asyncio.sleep(self._watchdog_interval)
            for handle in self._registry.sweep_timeouts():
                if not handle.done() or handle.cancelled():
                    continue
                outcome = handle.result()
                LOGGER.warning(
                    "DVL %s request timed out after %.2fs",
                    outcome.command,
                    outcome.timeout,
                )
