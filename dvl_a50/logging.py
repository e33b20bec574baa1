"""Logging setup for the dvl-a50 service and command-line tools."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Logs every line exchanged with the device at DEBUG.
TRAFFIC_LOGGER = "dvl_a50.adapters.tcp"

ACCESS_LOGGER = "aiohttp.access"


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Install console and optional file handlers on the root logger.

    ``log_network`` traces the raw DVL line traffic regardless of ``level``;
    health endpoint access logs stay at WARNING either way.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(_parse_level(level))
    logging.captureWarnings(True)

    logging.getLogger(TRAFFIC_LOGGER).setLevel(
        logging.DEBUG if log_network else logging.NOTSET
    )
    logging.getLogger(ACCESS_LOGGER).setLevel(logging.WARNING)


def _parse_level(level: str) -> int:
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO
