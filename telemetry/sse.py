"""Minimal Server-Sent Events codec shared by the server and the dashboard client."""
from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Optional

KEEPALIVE_FRAME = ": keepalive\n\n"


@dataclass(frozen=True)
class ServerSentEvent:
    data: str
    event: str = "message"
    id: Optional[str] = None
    retry: Optional[int] = None


def encode_event(data: str, *, event: Optional[str] = None, event_id: Optional[str] = None) -> str:
    """Encode one event frame; multi-line data is split across ``data:`` fields."""
    lines: List[str] = []
    if event:
        lines.append(f"event: {event}")
    if event_id:
        lines.append(f"id: {event_id}")
    for chunk in data.split("\n"):
        lines.append(f"data: {chunk}")
    return "\n".join(lines) + "\n\n"


class SSEDecoder:
    """Incremental line-oriented decoder following the WHATWG event-stream rules."""

    def __init__(self) -> None:
        self._data: List[str] = []
        self._event = ""
        self._id: Optional[str] = None
        self._retry: Optional[int] = None

    def feed(self, line: str) -> Optional[ServerSentEvent]:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self._id = value
        elif name == "retry":
            if value.isdigit():
                self._retry = int(value)
        return None

    def _dispatch(self) -> Optional[ServerSentEvent]:
        if not self._data:
            self._event = ""
            return None
        event = ServerSentEvent(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self._id,
            retry=self._retry,
        )
        self._data = []
        self._event = ""
        return event


async def iter_events(lines: AsyncIterable[str]) -> AsyncIterator[ServerSentEvent]:
    decoder = SSEDecoder()
    async for line in lines:
        event = decoder.feed(line)
        if event is not None:
            yield event
