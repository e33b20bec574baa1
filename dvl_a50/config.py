"""Configuration loader for the DVL A50 driver."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants

MIN_WATCHDOG_INTERVAL = 0.001
MIN_REPORT_STALE_AFTER = 0.1


@dataclass(slots=True)
class DeviceConfig:
    host: str = constants.DEFAULT_DEVICE_HOST
    port: int = constants.DEFAULT_DEVICE_PORT
    connect_timeout_seconds: float = constants.DEFAULT_CONNECT_TIMEOUT


@dataclass(slots=True)
class CommandConfig:
    timeout_seconds: float = constants.DEFAULT_COMMAND_TIMEOUT
    watchdog_interval_seconds: float = constants.DEFAULT_WATCHDOG_INTERVAL


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0
    stale_after_seconds: float = constants.DEFAULT_REPORT_STALE_AFTER


@dataclass(slots=True)
class DvlConfig:
    device: DeviceConfig
    commands: CommandConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def load_config(path: Optional[Path] = None) -> DvlConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "device": {
                "host": constants.DEFAULT_DEVICE_HOST,
                "port": str(constants.DEFAULT_DEVICE_PORT),
                "connect_timeout_seconds": str(constants.DEFAULT_CONNECT_TIMEOUT),
            },
            "commands": {
                "timeout_seconds": str(constants.DEFAULT_COMMAND_TIMEOUT),
                "watchdog_interval_seconds": str(constants.DEFAULT_WATCHDOG_INTERVAL),
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
                "stale_after_seconds": str(constants.DEFAULT_REPORT_STALE_AFTER),
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    device = DeviceConfig(
        host=parser.get("device", "host").strip(),
        port=parser.getint("device", "port", fallback=constants.DEFAULT_DEVICE_PORT),
        connect_timeout_seconds=max(
            0.0,
            parser.getfloat(
                "device",
                "connect_timeout_seconds",
                fallback=constants.DEFAULT_CONNECT_TIMEOUT,
            ),
        ),
    )

    commands = CommandConfig(
        timeout_seconds=max(
            0.0,
            parser.getfloat(
                "commands", "timeout_seconds", fallback=constants.DEFAULT_COMMAND_TIMEOUT
            ),
        ),
        watchdog_interval_seconds=max(
            MIN_WATCHDOG_INTERVAL,
            parser.getfloat(
                "commands",
                "watchdog_interval_seconds",
                fallback=constants.DEFAULT_WATCHDOG_INTERVAL,
            ),
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
        stale_after_seconds=max(
            MIN_REPORT_STALE_AFTER,
            parser.getfloat(
                "health",
                "stale_after_seconds",
                fallback=constants.DEFAULT_REPORT_STALE_AFTER,
            ),
        ),
    )

    return DvlConfig(
        device=device,
        commands=commands,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )
