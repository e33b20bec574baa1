"""Command-line interface for the DVL A50 driver."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import math
import sys
from pathlib import Path
from typing import Any, Optional

from . import constants
from .adapters import TcpTransport, TransportError
from .app import DvlMonitorApp
from .config import DvlConfig, load_config
from .core import RequestTimeout, Response, Result
from .driver import DvlA50Driver
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 2


class ConfigurationError(RuntimeError):
    """Raised when command-line input cannot be turned into a command."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dvl-a50", description="Driver utilities for the Water Linked DVL A50"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", help="Override the device address")
    parser.add_argument("--port", type=int, help="Override the device port")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Keep a session open and serve health status")

    monitor_parser = subparsers.add_parser(
        "monitor", help="Print telemetry reports as JSON lines"
    )
    monitor_parser.add_argument(
        "--count",
        type=int,
        default=0,
        help="Stop after this many reports (default: run until disconnected)",
    )

    command_parser = subparsers.add_parser("command", help="Send one device command")
    command_parser.add_argument("name", choices=constants.COMMANDS)
    command_parser.add_argument(
        "--timeout", type=float, help="Seconds to wait for the acknowledgement"
    )
    command_parser.add_argument(
        "--parameters",
        help='JSON object for set_config, e.g. \'{"speed_of_sound": 1480}\'',
    )

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.host:
        config.device.host = args.host
    if args.port:
        config.device.port = args.port

    if args.command == "run":
        return DvlMonitorApp.start(config)

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return EXIT_OK

    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )

    try:
        if args.command == "monitor":
            return asyncio.run(_monitor(config, count=args.count))
        if args.command == "command":
            return asyncio.run(
                _send_command(
                    config,
                    args.name,
                    timeout=args.timeout,
                    parameters=args.parameters,
                )
            )
    except (TransportError, ConfigurationError) as exc:
        LOGGER.error("%s", exc)
        return EXIT_FAILED
    except KeyboardInterrupt:
        return EXIT_OK

    LOGGER.error("Unknown command: %s", args.command)
    return EXIT_FAILED


def build_command_fields(name: str, parameters: Optional[str]) -> Optional[dict[str, Any]]:
    """Translate ``--parameters`` into set_config fields."""

    if name != constants.SET_CONFIG:
        if parameters:
            raise ConfigurationError(f"--parameters is only valid for {constants.SET_CONFIG}")
        return None

    if not parameters:
        raise ConfigurationError(f"{constants.SET_CONFIG} requires --parameters")
    try:
        value = json.loads(parameters)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"--parameters is not valid JSON: {exc.msg}") from exc
    if not isinstance(value, dict):
        raise ConfigurationError("--parameters must be a JSON object")
    return {"parameters": value}


def resolve_command_timeout(timeout: Optional[float], default: float) -> float:
    """Validate ``--timeout``, falling back to the configured budget."""

    if timeout is None:
        return default
    if not math.isfinite(timeout) or timeout < 0:
        raise ConfigurationError(
            f"--timeout must be a non-negative number of seconds, got {timeout:g}"
        )
    return timeout


def describe_result(result: Result) -> tuple[int, str]:
    if isinstance(result, RequestTimeout):
        return EXIT_TIMEOUT, f"{result.command}: no acknowledgement within {result.timeout:g}s"
    assert isinstance(result, Response)
    if result.success:
        return EXIT_OK, "ok"
    return EXIT_FAILED, f"failed: {result.error_message or 'no error message'}"


def report_to_json(report: Any) -> str:
    document = {"type": type(report).__name__}
    document.update(dataclasses.asdict(report))
    return json.dumps(document, sort_keys=True)


def _transport_for(config: DvlConfig) -> TcpTransport:
    return TcpTransport(
        config.device.host,
        config.device.port,
        connect_timeout=config.device.connect_timeout_seconds,
    )


async def _send_command(
    config: DvlConfig,
    name: str,
    *,
    timeout: Optional[float],
    parameters: Optional[str],
) -> int:
    fields = build_command_fields(name, parameters)
    budget = resolve_command_timeout(timeout, config.commands.timeout_seconds)

    async with _transport_for(config) as transport:
        driver = DvlA50Driver(
            transport, watchdog_interval=config.commands.watchdog_interval_seconds
        )
        async with driver:
            if name == constants.CALIBRATE_GYRO:
                handle = driver.calibrate_gyro(budget)
            elif name == constants.TRIGGER_PING:
                handle = driver.trigger_ping(budget)
            elif name == constants.RESET_DEAD_RECKONING:
                handle = driver.reset_dead_reckoning(budget)
            else:
                assert fields is not None
                handle = driver.set_config(fields, budget)
            await transport.drain()
            result = await handle

    code, text = describe_result(result)
    print(f"{name}: {text}")
    return code


async def _monitor(config: DvlConfig, *, count: int) -> int:
    finished = asyncio.Event()
    seen = 0

    def _print(report: Any) -> None:
        nonlocal seen
        print(report_to_json(report), flush=True)
        seen += 1
        if count and seen >= count:
            finished.set()

    async with _transport_for(config) as transport:
        async with DvlA50Driver(
            transport, watchdog_interval=config.commands.watchdog_interval_seconds
        ) as driver:
            driver.attach_velocity_callback(_print)
            driver.attach_dead_reckoning_callback(_print)

            closed = asyncio.create_task(driver.wait_closed())
            done_waiter = asyncio.create_task(finished.wait())
            try:
                await asyncio.wait(
                    {closed, done_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                closed.cancel()
                done_waiter.cancel()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
