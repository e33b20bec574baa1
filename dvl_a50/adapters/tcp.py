"""TCP transport speaking newline-delimited UTF-8 text to the DVL."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from .. import constants

LOGGER = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised when the transport cannot reach or use the device socket."""


class TcpTransport:
    """Persistent asyncio stream connection to the DVL."""

    def __init__(
        self,
        host: str,
        port: int = constants.DEFAULT_DEVICE_PORT,
        *,
        connect_timeout: float = constants.DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def is_connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        """Open the socket.

        Raises:
            TransportError: If the device refuses the connection or the
                connect does not complete within ``connect_timeout``.
        """

        if self.is_connected:
            return

        try:
            async with asyncio.timeout(self.connect_timeout):
                self._reader, self._writer = await asyncio.open_connection(
                    self.host, self.port
                )
        except (OSError, asyncio.TimeoutError) as exc:
            raise TransportError(
                f"Unable to connect to DVL at {self.host}:{self.port}: {exc or type(exc).__name__}"
            ) from exc

        LOGGER.info("Connected to DVL at %s:%d", self.host, self.port)

    def send(self, text: str) -> None:
        writer = self._writer
        if writer is None or writer.is_closing():
            raise TransportError("Not connected")

        writer.write(text.encode("utf-8") + b"\n")
        LOGGER.debug("Sent: %s", text)

    async def drain(self) -> None:
        """Wait until buffered outgoing data has been flushed to the socket."""

        if self._writer is not None:
            await self._writer.drain()

    async def receive_line(self) -> Optional[str]:
        reader = self._reader
        if reader is None:
            raise TransportError("Not connected")

        try:
            data = await reader.readline()
        except ValueError:
            # Line exceeded the stream limit; the reader already discarded it.
            LOGGER.warning("Discarded oversized line from DVL")
            return ""

        if not data:
            return None
        line = data.decode("utf-8", errors="replace").rstrip("\r\n")
        LOGGER.debug("Received: %s", line)
        return line

    async def close(self) -> None:
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is None:
            return

        writer.close()
        with contextlib.suppress(OSError, ConnectionError):
            await writer.wait_closed()
        LOGGER.info("Disconnected from DVL at %s:%d", self.host, self.port)

    async def __aenter__(self) -> "TcpTransport":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
