"""Constants used across the dvl_a50 package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "dvl-a50"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_DEVICE_HOST = "192.168.194.95"
DEFAULT_DEVICE_PORT = 16171

DEFAULT_COMMAND_TIMEOUT = 3.0
DEFAULT_WATCHDOG_INTERVAL = 0.05
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_REPORT_STALE_AFTER = 2.0

CALIBRATE_GYRO = "calibrate_gyro"
TRIGGER_PING = "trigger_ping"
RESET_DEAD_RECKONING = "reset_dead_reckoning"
SET_CONFIG = "set_config"

COMMANDS = (CALIBRATE_GYRO, TRIGGER_PING, RESET_DEAD_RECKONING, SET_CONFIG)
