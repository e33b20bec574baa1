"""Protocol definitions for the transport and report callbacks."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Protocol

from .models import DeadReckoningReport, VelocityReport


VelocityCallback = Callable[[VelocityReport], Awaitable[None] | None]
DeadReckoningCallback = Callable[[DeadReckoningReport], Awaitable[None] | None]


class Transport(Protocol):
    """Connected, newline-delimited text stream to the device."""

    @property
    def is_connected(self) -> bool:
        ...

    def send(self, text: str) -> None:
        """Queue one message for transmission without blocking.

        The transport appends the line terminator.
        """
        ...

    async def receive_line(self) -> Optional[str]:
        """Return the next line without its terminator, or None at end of stream."""
        ...

    async def close(self) -> None:
        ...
