"""Reconnecting stream subscriber with backoff and visibility suspension."""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Callable, Optional, Protocol

from .errors import TransportError

LOGGER = logging.getLogger(__name__)

LIVE_COLOR = "#16a34a"
STALE_COLOR = "#dc2626"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """The part of :class:`asyncio.AbstractEventLoop` the subscriber relies on."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class Transport(Protocol):
    def close(self) -> None: ...


# factory(url, on_open, on_message, on_error) -> Transport
TransportFactory = Callable[..., Transport]


class ConnectionState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    ERRORED = "errored"
    SUSPENDED = "suspended"


class Backoff:
    """Doubling delay bounded by ``floor_s`` and ``ceiling_s``."""

    def __init__(self, floor_s: float = 1.0, ceiling_s: float = 15.0, factor: float = 2.0) -> None:
        if not 0 < floor_s <= ceiling_s:
            raise ValueError("backoff floor must be positive and not exceed the ceiling")
        self.floor_s = floor_s
        self.ceiling_s = ceiling_s
        self.factor = factor
        self.delay_s = floor_s

    def reset(self) -> None:
        self.delay_s = self.floor_s

    def advance(self) -> float:
        self.delay_s = min(self.delay_s * self.factor, self.ceiling_s)
        return self.delay_s


def close_quietly(transport: Optional[Transport]) -> None:
    if transport is None:
        return
    try:
        transport.close()
    except Exception:  # noqa: BLE001 - closing must never propagate
        LOGGER.debug("Ignoring error while closing transport", exc_info=True)


class LiveIndicator:
    """Marks the feed live on every message and decays to stale after ``window_s``."""

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        window_s: float = 5.0,
        on_change: Optional[Callable[[bool, str], None]] = None,
    ) -> None:
        self._scheduler = scheduler
        self.window_s = window_s
        self._on_change = on_change
        self._timer: Optional[TimerHandle] = None
        self.live = False

    @property
    def color(self) -> str:
        return LIVE_COLOR if self.live else STALE_COLOR

    def _set(self, live: bool) -> None:
        changed = live != self.live
        self.live = live
        if changed and self._on_change is not None:
            self._on_change(live, self.color)

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def ok(self) -> None:
        self._set(True)
        self._cancel()
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._timer = scheduler.call_later(self.window_s, self._expire)

    def error(self) -> None:
        self._set(False)

    def _expire(self) -> None:
        self._timer = None
        LOGGER.info("No stream message for %.1fs; marking feed stale", self.window_s)
        self._set(False)

    def close(self) -> None:
        self._cancel()


class Connection:
    """One logical subscription to the telemetry stream.

    State changes happen only in response to :meth:`start`, :meth:`stop`,
    :meth:`set_visible`, transport callbacks and the reconnect timer. At most
    one transport is alive at a time; callbacks coming from a transport that
    has since been replaced are ignored.
    """

    def __init__(
        self,
        url: str,
        transport_factory: TransportFactory,
        *,
        on_message: Callable[[str], None],
        on_status: Optional[Callable[[bool], None]] = None,
        scheduler: Optional[Scheduler] = None,
        backoff: Optional[Backoff] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.url = url
        self._factory = transport_factory
        self._on_message = on_message
        self._on_status = on_status
        self._scheduler = scheduler
        self.backoff = backoff or Backoff()
        self._clock = clock

        self.state = ConnectionState.IDLE
        self.visible = True
        self.last_open_at: Optional[float] = None
        self._transport: Optional[Transport] = None
        self._timer: Optional[TimerHandle] = None
        self._started = False

    @property
    def transport(self) -> Optional[Transport]:
        return self._transport

    def _loop(self) -> Scheduler:
        return self._scheduler or asyncio.get_running_loop()

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            LOGGER.debug("Connection %s -> %s", self.state.value, state.value)
            self.state = state

    def _status(self, errored: bool) -> None:
        if self._on_status is not None:
            self._on_status(errored)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        close_quietly(transport)

    # -- lifecycle -------------------------------------------------------

    def start(self, visible: bool = True) -> None:
        if self._started:
            return
        self._started = True
        self.visible = visible
        if visible:
            self._connect()
        else:
            self._set_state(ConnectionState.SUSPENDED)

    def stop(self) -> None:
        self._started = False
        self._cancel_timer()
        self._close_transport()
        self._set_state(ConnectionState.IDLE)

    def set_visible(self, visible: bool) -> None:
        """Suspend on hidden (closing the transport before returning), resume on visible."""
        self.visible = visible
        if not self._started:
            return
        if not visible:
            if self.state in (ConnectionState.OPEN, ConnectionState.CONNECTING, ConnectionState.ERRORED):
                self._cancel_timer()
                self._close_transport()
                self._set_state(ConnectionState.SUSPENDED)
                LOGGER.info("Stream suspended while hidden")
        elif self.state in (ConnectionState.SUSPENDED, ConnectionState.IDLE):
            self._connect()

    # -- transitions ------------------------------------------------------

    def _connect(self) -> None:
        self._cancel_timer()
        self._close_transport()
        self._set_state(ConnectionState.CONNECTING)

        holder: dict = {}

        def on_open() -> None:
            self._handle_open(holder.get("transport"))

        def on_message(data: str) -> None:
            self._handle_message(holder.get("transport"), data)

        def on_error(exc: Optional[BaseException] = None) -> None:
            self._handle_error(holder.get("transport"), exc)

        try:
            transport = self._factory(self.url, on_open=on_open, on_message=on_message, on_error=on_error)
        except Exception as exc:  # noqa: BLE001 - construction failure is a transport error
            LOGGER.warning("Unable to create stream transport for %s: %s", self.url, exc)
            self._fail(TransportError(str(exc)))
            return
        holder["transport"] = transport
        self._transport = transport

    def _is_current(self, transport: Optional[Transport]) -> bool:
        return transport is not None and transport is self._transport

    def _handle_open(self, transport: Optional[Transport]) -> None:
        if not self._is_current(transport):
            return
        self.backoff.reset()
        self.last_open_at = self._clock()
        self._set_state(ConnectionState.OPEN)
        LOGGER.info("Stream connected to %s", self.url)
        self._status(False)

    def _handle_message(self, transport: Optional[Transport], data: str) -> None:
        if not self._is_current(transport) or self.state is not ConnectionState.OPEN:
            return
        self._on_message(data)

    def _handle_error(self, transport: Optional[Transport], exc: Optional[BaseException]) -> None:
        if not self._is_current(transport):
            return
        self._fail(exc)

    def _fail(self, exc: Optional[BaseException]) -> None:
        self._close_transport()
        self._set_state(ConnectionState.ERRORED)
        self._status(True)
        delay = self.backoff.delay_s
        LOGGER.warning("Stream error (%s); reconnecting in %.1fs", exc or "transport error", delay)
        self._timer = self._loop().call_later(delay, self._retry)

    def _retry(self) -> None:
        self._timer = None
        if self.state is not ConnectionState.ERRORED:
            return
        self.backoff.advance()
        self._connect()
