"""httpx based event-stream transport used by :class:`dashboard.subscriber.Connection`."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import httpx

from telemetry.sse import iter_events

from .errors import TransportError

LOGGER = logging.getLogger(__name__)

CONNECT_TIMEOUT_S = 10.0


class EventSourceTransport:
    """Streams one ``text/event-stream`` response on a background task.

    The transport never reconnects on its own: any failure, including the
    server ending the response, is reported once through ``on_error`` and the
    owner decides what happens next.
    """

    def __init__(
        self,
        url: str,
        *,
        on_open: Callable[[], None],
        on_message: Callable[[str], None],
        on_error: Callable[[Optional[BaseException]], None],
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
    ) -> None:
        self.url = url
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._client = client
        self._timeout = httpx.Timeout(connect_timeout_s, read=None)
        self.closed = False
        self._task: asyncio.Task[None] = asyncio.get_running_loop().create_task(self._run())

    async def _stream(self, client: httpx.AsyncClient) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        async with client.stream("GET", self.url, headers=headers) as response:
            if response.status_code != 200:
                raise TransportError(f"stream answered HTTP {response.status_code}")
            content_type = response.headers.get("content-type", "")
            if not content_type.startswith("text/event-stream"):
                raise TransportError(f"unexpected content type '{content_type}'")
            self._on_open()
            async for event in iter_events(response.aiter_lines()):
                if self.closed:
                    return
                self._on_message(event.data)
        raise TransportError("stream ended by server")

    async def _run(self) -> None:
        try:
            if self._client is not None:
                await self._stream(self._client)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    await self._stream(client)
        except asyncio.CancelledError:
            raise
        except (httpx.HTTPError, TransportError) as exc:
            if not self.closed:
                self._on_error(exc)
        except Exception as exc:
            LOGGER.warning("Event stream %s stopped on unexpected error: %r", self.url, exc)
            if not self.closed:
                self._on_error(exc)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if not self._task.done():
            self._task.cancel()
