"""Bounded event channel between a producer task and the transport."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .events import StreamEvent

logger = logging.getLogger(__name__)


class EventChannel:
    """Async iterator over the events of one request.

    The producer runs as its own task and blocks on ``send`` while the
    channel is full. Iteration ends once the producer has finished and every
    queued event was consumed. ``cancel`` aborts the producer; events queued
    before the cancel are still delivered.
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self.states: list[str] = []

    def start(self, producer: Callable[["EventChannel"], Awaitable[None]]) -> None:
        """Run ``producer(self)`` in a background task."""
        if self._task is not None:
            raise RuntimeError("Channel already started")
        self._task = asyncio.create_task(producer(self))

    async def send(self, event: StreamEvent) -> None:
        await self._queue.put(event)

    def cancel(self) -> None:
        """Abort the producer, e.g. when the client disconnected."""
        if self._task is not None and not self._task.done():
            logger.info("Cancelling response stream")
            self._cancelled = True
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        return self._task is not None and self._task.done() and self._queue.empty()

    async def wait_closed(self) -> None:
        """Wait for the producer task to finish."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._cancelled:
                raise

    def __aiter__(self) -> "EventChannel":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._task is None:
            raise RuntimeError("Channel not started")

        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._task.done():
                raise StopAsyncIteration

            getter = asyncio.ensure_future(self._queue.get())
            done, _ = await asyncio.wait({getter, self._task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                return getter.result()
            getter.cancel()
