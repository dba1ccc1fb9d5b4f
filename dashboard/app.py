"""Client pipeline: subscriber -> normalizer -> derived metrics -> rendering sync."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from telemetry.schemas import Snapshot
from telemetry.settings import ClientSettings

from .derived import CompareMode, Controls, DerivedMetricsEngine, DerivedView
from .normalize import fetch_or_demo, normalize, parse_message
from .render import RenderingSync
from .subscriber import Backoff, Connection, LiveIndicator, Scheduler, TimerHandle, TransportFactory
from .transport import EventSourceTransport

LOGGER = logging.getLogger(__name__)


async def run_in_executor(func: Callable[..., Any], *args: Any, loop: Optional[asyncio.AbstractEventLoop] = None) -> Any:
    loop = loop or asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args))


class DashboardClient:
    """Wires one connection, one engine and one renderer together."""

    def __init__(
        self,
        renderer: RenderingSync,
        settings: Optional[ClientSettings] = None,
        *,
        transport_factory: TransportFactory = EventSourceTransport,
        scheduler: Optional[Scheduler] = None,
        fetcher: Callable[[str, float], Snapshot] = fetch_or_demo,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.renderer = renderer
        self._scheduler = scheduler
        self._fetcher = fetcher
        self._post_layout: Optional[TimerHandle] = None
        self.messages = 0

        self.engine = DerivedMetricsEngine(
            Controls(
                price=self.settings.price,
                device_count=self.settings.device_count,
                per_unit_rate=self.settings.per_unit_rate,
            ),
            base_price=self.settings.base_price,
            savings_fraction=self.settings.savings_fraction,
        )
        self.indicator = LiveIndicator(scheduler, self.settings.live_window_s, on_change=self._render_live)
        self.connection = Connection(
            self.settings.stream_url,
            transport_factory,
            on_message=self.handle_message,
            on_status=self._handle_status,
            scheduler=scheduler,
            backoff=Backoff(self.settings.backoff_floor_s, self.settings.backoff_ceiling_s),
        )

    def _loop(self) -> Scheduler:
        return self._scheduler or asyncio.get_running_loop()

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self.engine.snapshot

    @property
    def view(self) -> Optional[DerivedView]:
        return self.engine.view

    # -- startup -----------------------------------------------------------

    def mount(self, snapshot: Snapshot) -> None:
        """First paint from a cold-start snapshot, then connect the stream."""
        view = self.engine.update_snapshot(snapshot)
        self.renderer.mount(snapshot, view)
        self._render_live(False, self.indicator.color)
        self._post_layout = self._loop().call_later(self.settings.post_layout_delay_s, self._after_layout)

    async def start(self, visible: bool = True) -> None:
        snapshot = await run_in_executor(self._fetcher, self.settings.snapshot_url, self.settings.snapshot_timeout_s)
        self.mount(snapshot)
        self.connection.start(visible=visible)

    def stop(self) -> None:
        if self._post_layout is not None:
            self._post_layout.cancel()
            self._post_layout = None
        self.connection.stop()
        self.indicator.close()

    def _after_layout(self) -> None:
        self._post_layout = None
        view = self.engine.recompute()
        if view is not None:
            self.renderer.apply_view(view)

    # -- stream ------------------------------------------------------------

    def handle_message(self, raw: str) -> None:
        state = parse_message(raw)
        if state is None:
            return
        snapshot = normalize(state)
        view = self.engine.update_snapshot(snapshot)
        self.renderer.apply(snapshot, view)
        self.messages += 1
        self.indicator.ok()

    def _handle_status(self, errored: bool) -> None:
        if errored:
            self.indicator.error()

    def _render_live(self, live: bool, color: str) -> None:
        self.renderer.set_text("live", " LIVE " if live else " STALE ", f"bold white on {color}")

    def set_visible(self, visible: bool) -> None:
        self.connection.set_visible(visible)

    # -- controls ----------------------------------------------------------

    def _update_controls(self, **changes: Any) -> Optional[DerivedView]:
        view = self.engine.update_controls(**changes)
        if view is not None:
            self.renderer.apply_view(view)
        return view

    def set_price(self, price: float) -> Optional[DerivedView]:
        return self._update_controls(price=price)

    def set_device_count(self, device_count: int) -> Optional[DerivedView]:
        return self._update_controls(device_count=device_count)

    def set_per_unit_rate(self, per_unit_rate: float) -> Optional[DerivedView]:
        return self._update_controls(per_unit_rate=per_unit_rate)

    def set_compare_mode(self, mode: CompareMode | str) -> Optional[DerivedView]:
        return self._update_controls(compare_mode=CompareMode(mode))
