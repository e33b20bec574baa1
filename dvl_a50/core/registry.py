"""Registry of commands awaiting a device acknowledgement.

Requests are queued per command kind in issue order. Each request owns a future
that is settled exactly once: either by an incoming acknowledgement
(``resolve_oldest``) or by the watchdog (``sweep_timeouts``). Both paths pop the
request and settle its future under the same lock, so whichever observes the
request first wins and the other finds it gone.

The device is assumed to answer commands of one kind in the order they were
sent. If it does not, acknowledgements are matched to the wrong requests; this
is not detected.

Usage:
    registry = RequestRegistry()

    handle = registry.enqueue("trigger_ping", timeout=3.0)
    ...
    # poll task, on acknowledgement
    registry.resolve_oldest("trigger_ping", Response(success=True))
    ...
    # watchdog task, periodically
    registry.sweep_timeouts()

    result = await handle
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from .models import RequestTimeout, Response, Result

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingRequest:
    """A command waiting for its acknowledgement."""

    command: str
    issued_at: float
    timeout: float
    future: asyncio.Future[Result]

    def is_expired(self, now: float) -> bool:
        return now - self.issued_at >= self.timeout


class RequestRegistry:
    """FIFO queues of pending requests keyed by command kind."""

    def __init__(self, *, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.monotonic
        self._queues: Dict[str, Deque[PendingRequest]] = {}
        self._lock = threading.Lock()

    def enqueue(
        self,
        command: str,
        timeout: float,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> asyncio.Future[Result]:
        """Append a new request for ``command`` and return its unresolved handle.

        Args:
            command: Command kind used to match the acknowledgement.
            timeout: Seconds to wait before the watchdog expires the request.
            loop: Loop owning the returned future (default: the running loop).
        """
        if not math.isfinite(timeout) or timeout < 0:
            raise ValueError(f"timeout must be finite and >= 0, got {timeout!r}")

        owner = loop or asyncio.get_running_loop()
        request = PendingRequest(
            command=command,
            issued_at=self._clock(),
            timeout=float(timeout),
            future=owner.create_future(),
        )
        with self._lock:
            self._queues.setdefault(command, deque()).append(request)

        LOGGER.debug("Enqueued %s request (timeout=%.3fs)", command, request.timeout)
        return request.future

    def resolve_oldest(self, command: str, response: Response) -> bool:
        """Settle the oldest pending request of ``command`` with ``response``.

        Returns False when nothing of that kind is waiting; the acknowledgement
        is then an orphan and the caller drops it.
        """
        with self._lock:
            queue = self._queues.get(command)
            if not queue:
                return False
            request = queue.popleft()
            if not queue:
                del self._queues[command]
            _settle(request, response)
        return True

    def sweep_timeouts(self, now: Optional[float] = None) -> List[asyncio.Future[Result]]:
        """Expire every request whose wait has reached its timeout.

        Args:
            now: Reference time on the registry clock (default: current time).

        Returns:
            Handles that were settled with ``RequestTimeout`` by this sweep.
        """
        reference = self._clock() if now is None else now
        expired: List[asyncio.Future[Result]] = []

        with self._lock:
            for command in list(self._queues):
                queue = self._queues[command]
                remaining: Deque[PendingRequest] = deque()
                for request in queue:
                    if request.is_expired(reference):
                        _settle(
                            request,
                            RequestTimeout(command=command, timeout=request.timeout),
                        )
                        expired.append(request.future)
                    else:
                        remaining.append(request)
                if remaining:
                    self._queues[command] = remaining
                else:
                    del self._queues[command]

        return expired

    def pending_count(self, command: Optional[str] = None) -> int:
        """Number of outstanding requests, for one kind or in total."""
        with self._lock:
            if command is not None:
                return len(self._queues.get(command, ()))
            return sum(len(queue) for queue in self._queues.values())

    def pending_by_command(self) -> Dict[str, int]:
        with self._lock:
            return {command: len(queue) for command, queue in self._queues.items()}


def _settle(request: PendingRequest, result: Result) -> None:
    future = request.future
    if future.done():
        # Only reachable when the owner cancelled the handle.
        LOGGER.debug("Dropping result for abandoned %s request", request.command)
        return
    loop = future.get_loop()
    if loop.is_closed():
        return
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        future.set_result(result)
    else:
        loop.call_soon_threadsafe(_set_if_pending, future, result)


def _set_if_pending(future: asyncio.Future[Result], result: Result) -> None:
    if not future.done():
        future.set_result(result)
