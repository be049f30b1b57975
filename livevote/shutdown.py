"""Graceful shutdown for connected scoreboards.

When the server stops, every live stream gets a ``server_shutdown`` event so
the scoreboard shows a reconnecting notice instead of freezing on the last
frame. Streams blocked waiting for a frame are woken immediately.

Usage in SSE generators::

    with shutdown_coordinator.display_connected():
        while True:
            frame = await shutdown_coordinator.next_frame(queue, timeout=15)
            if shutdown_coordinator.is_shutting_down:
                yield shutdown_coordinator.goodbye_event()
                return
            ...
"""

import asyncio
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    """Tracks connected displays and tells them when the board goes down."""

    def __init__(self) -> None:
        self._stopping = asyncio.Event()
        self._displays = 0

    @property
    def is_shutting_down(self) -> bool:
        return self._stopping.is_set()

    @property
    def connected_displays(self) -> int:
        return self._displays

    def initiate_shutdown(self) -> None:
        """Flag shutdown and wake every stream waiting in ``next_frame``."""
        if self._stopping.is_set():
            return
        logger.info("Shutdown initiated. Connected displays: %d", self._displays)
        self._stopping.set()

    @contextmanager
    def display_connected(self) -> Iterator[None]:
        """Count a display for the lifetime of its stream."""
        self._displays += 1
        try:
            yield
        finally:
            self._displays = max(0, self._displays - 1)

    async def next_frame(self, queue: asyncio.Queue, timeout: float) -> Any | None:
        """
        Wait for the next frame on a display queue.

        Returns:
            The frame, or None on timeout or once shutdown has begun
        """
        if self._stopping.is_set():
            return None

        get = asyncio.ensure_future(queue.get())
        stop = asyncio.ensure_future(self._stopping.wait())
        try:
            done, _ = await asyncio.wait(
                {get, stop}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in (get, stop):
                if not waiter.done():
                    waiter.cancel()

        if get in done:
            return get.result()
        return None

    def goodbye_event(self) -> str:
        """Format the ``server_shutdown`` SSE event."""
        event: dict[str, Any] = {
            "type": "server_shutdown",
            "message": "Board is restarting, reconnecting automatically",
        }
        return f"data: {json.dumps(event)}\n\n"


# Module-level singleton
shutdown_coordinator = ShutdownCoordinator()
