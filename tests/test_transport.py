"""Tests for the httpx event-stream transport."""

from __future__ import annotations

import asyncio
from typing import List

import httpx

from tests.conftest import get_test_logger
from tests.helpers import stream_frame

from dashboard.errors import TransportError
from dashboard.transport import EventSourceTransport
from telemetry.sse import encode_event

logger = get_test_logger(__name__)
logger.info("Starting tests for transport module")

URL = "http://test/api/telemetry/stream"


def _run(handler) -> List[object]:
    async def scenario() -> List[object]:
        events: List[object] = []
        done = asyncio.Event()

        def on_error(exc) -> None:
            events.append(exc)
            done.set()

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            EventSourceTransport(
                URL,
                on_open=lambda: events.append("open"),
                on_message=events.append,
                on_error=on_error,
                client=client,
            )
            await asyncio.wait_for(done.wait(), timeout=2.0)
        return events

    return asyncio.run(scenario())


def test_messages_then_error_when_stream_ends() -> None:
    body = (": keepalive\n\n" + encode_event(stream_frame(kind="snapshot")) + encode_event(stream_frame())).encode()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "text/event-stream"
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)

    events = _run(handler)
    assert events[0] == "open"
    assert events[1] == stream_frame(kind="snapshot")
    assert events[2] == stream_frame()
    assert isinstance(events[3], TransportError)


def test_bad_status_is_transport_error() -> None:
    events = _run(lambda request: httpx.Response(503, text="unavailable"))
    assert len(events) == 1
    assert isinstance(events[0], TransportError)


def test_wrong_content_type_is_transport_error() -> None:
    events = _run(lambda request: httpx.Response(200, json={"kpi": {}}))
    assert len(events) == 1
    assert "content type" in str(events[0])


def test_connect_failure_is_reported() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    events = _run(handler)
    assert isinstance(events[0], httpx.ConnectError)


def test_close_is_idempotent_and_silent() -> None:
    async def scenario() -> List[object]:
        events: List[object] = []
        transport = EventSourceTransport(
            URL,
            on_open=lambda: events.append("open"),
            on_message=events.append,
            on_error=events.append,
        )
        transport.close()
        transport.close()
        await asyncio.sleep(0.01)
        assert transport.closed
        return events

    assert asyncio.run(scenario()) == []


def test_callback_failure_is_reported_once() -> None:
    body = (encode_event(stream_frame()) + encode_event(stream_frame())).encode()

    async def scenario() -> List[object]:
        errors: List[object] = []
        done = asyncio.Event()

        def on_message(data: str) -> None:
            raise OverflowError("int too large to convert to float")

        def on_error(exc) -> None:
            errors.append(exc)
            done.set()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            transport = EventSourceTransport(URL, on_open=lambda: None, on_message=on_message, on_error=on_error, client=client)
            await asyncio.wait_for(done.wait(), timeout=2.0)
            await asyncio.sleep(0.01)
            assert transport._task.done()
        return errors

    errors = asyncio.run(scenario())
    assert len(errors) == 1
    assert isinstance(errors[0], OverflowError)
