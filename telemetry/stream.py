"""Tick fan-out hub and per-connection Server-Sent Events stream."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

from .generator import StateGenerator
from .schemas import Snapshot, StreamMessage
from .sse import KEEPALIVE_FRAME, encode_event

LOGGER = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "Content-Encoding": "identity",
}


def encode_message(kind: str, snapshot: Snapshot) -> str:
    message = StreamMessage(type=kind, state=snapshot)
    return encode_event(message.model_dump_json(by_alias=True))


class TickHub:
    """Drives one generator on a fixed period and fans each snapshot out.

    Subscribers are bounded queues; a slow consumer loses its oldest pending
    snapshot rather than stalling the tick loop.
    """

    def __init__(
        self,
        generator: StateGenerator,
        interval_s: Optional[float] = None,
        queue_size: int = 16,
    ) -> None:
        self.generator = generator
        self.interval_s = interval_s if interval_s is not None else generator.settings.tick_interval_s
        self.queue_size = queue_size
        self._subscribers: Set[asyncio.Queue[Snapshot]] = set()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current(self) -> Snapshot:
        return self.generator.current()

    def subscribe(self) -> "asyncio.Queue[Snapshot]":
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        LOGGER.info("Stream subscriber added (%d active)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[Snapshot]") -> None:
        if queue in self._subscribers:
            self._subscribers.discard(queue)
            LOGGER.info("Stream subscriber removed (%d active)", len(self._subscribers))

    def publish(self, snapshot: Snapshot) -> None:
        for queue in list(self._subscribers):
            if queue.full():
                with contextlib.suppress(asyncio.QueueEmpty):
                    queue.get_nowait()
                LOGGER.debug("Dropped stale snapshot for slow subscriber")
            queue.put_nowait(snapshot)

    def tick(self) -> Snapshot:
        snapshot = self.generator.advance()
        self.publish(snapshot)
        return snapshot

    async def _run(self) -> None:
        LOGGER.info("Tick loop started (interval %.2fs)", self.interval_s)
        try:
            while True:
                await asyncio.sleep(self.interval_s)
                self.tick()
        except asyncio.CancelledError:
            LOGGER.info("Tick loop stopped after %d ticks", self.generator.ticks)
            raise

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="telemetry-tick")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


async def event_stream(
    hub: TickHub,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive_s: float = 15.0,
) -> AsyncIterator[str]:
    """Yield SSE frames for one connection: a full snapshot, then every tick."""
    queue = hub.subscribe()
    try:
        yield encode_message("snapshot", hub.current())
        while True:
            if await is_disconnected():
                LOGGER.info("Stream client disconnected")
                break
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=keepalive_s)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            yield encode_message("tick", snapshot)
    finally:
        hub.unsubscribe(queue)
