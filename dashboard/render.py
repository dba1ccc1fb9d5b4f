"""Apply snapshots and derived values to chart handles and text slots.

The chart library is a capability handed in from outside: anything with a
``create(container, series_config, initial_data)`` returning a handle that
supports ``replace_data(rows)`` and ``set_series_visible(name, visible)``.
Widgets are optional. A widget whose container is not registered is skipped
without error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from telemetry.schemas import Snapshot

from .derived import DerivedView
from .errors import RenderPreconditionError

LOGGER = logging.getLogger(__name__)


class ChartHandle(Protocol):
    def replace_data(self, rows: List[Dict[str, Any]]) -> None: ...

    def set_series_visible(self, series_name: str, visible: bool) -> None: ...


class ChartLibrary(Protocol):
    def create(self, container: Any, series_config: "ChartSpec", initial_data: List[Dict[str, Any]]) -> ChartHandle: ...


class TextSlot(Protocol):
    def set_text(self, text: str, style: str = "") -> None: ...


@dataclass(frozen=True)
class SeriesSpec:
    key: str
    name: str
    kind: str = "line"


@dataclass(frozen=True)
class ChartSpec:
    title: str
    x_key: str
    series: Tuple[SeriesSpec, ...]
    stacked: bool = False
    y_range: Optional[Tuple[float, float]] = None


CHARTS: Dict[str, ChartSpec] = {
    "weekday": ChartSpec(
        title="Baseline vs optimized (kWh per day)",
        x_key="label",
        series=(SeriesSpec("valueA", "Baseline"), SeriesSpec("valueB", "Optimized", "area")),
    ),
    "load_split": ChartSpec(
        title="Share of total (%)",
        x_key="label",
        series=(SeriesSpec("partA", "Overnight", "bar"), SeriesSpec("partB", "Daytime", "bar")),
        stacked=True,
    ),
    "cost_comparison": ChartSpec(
        title="Annual cost by unit size",
        x_key="bucket",
        series=(SeriesSpec("before", "Before", "bar"), SeriesSpec("after", "After", "bar")),
    ),
    "time_series": ChartSpec(
        title="Room temperature",
        x_key="timestamp",
        series=(
            SeriesSpec("value", "Temperature"),
            SeriesSpec("lowThreshold", "Low set-point"),
            SeriesSpec("highThreshold", "High set-point"),
        ),
        y_range=(69, 81),
    ),
}

TEXT_SLOTS = ("kpi", "badge", "savings", "sparkline", "live")


def _rows(items: Sequence[Any]) -> List[Dict[str, Any]]:
    return [item.to_payload() for item in items]


def chart_rows(name: str, snapshot: Snapshot, view: Optional[DerivedView]) -> List[Dict[str, Any]]:
    if name == "weekday":
        return _rows(snapshot.weekday_series)
    if name == "load_split":
        return _rows(snapshot.load_split)
    if name == "cost_comparison":
        return _rows(view.cost_rows if view is not None else snapshot.cost_comparison)
    if name == "time_series":
        return _rows(snapshot.time_series)
    raise KeyError(name)


def format_kpi(snapshot: Snapshot) -> str:
    kpi = snapshot.kpi
    return (
        f"Overnight reduction {kpi.reduction_pct}%  |  Payback {kpi.payback_label}  |  "
        f"Local logs {kpi.log_retention_days} days  |  Scale {kpi.device_scale}"
    )


class RenderingSync:
    """Owns chart handles for whichever widget containers are registered."""

    def __init__(self, library: ChartLibrary, containers: Optional[Dict[str, Any]] = None) -> None:
        self.library = library
        self._containers: Dict[str, Any] = dict(containers or {})
        self._charts: Dict[str, ChartHandle] = {}

    def register(self, name: str, container: Any) -> None:
        if self._containers.get(name) is not container:
            self._charts.pop(name, None)
        self._containers[name] = container

    def unregister(self, name: str) -> None:
        self._containers.pop(name, None)
        self._charts.pop(name, None)

    def has(self, name: str) -> bool:
        return self._containers.get(name) is not None

    @property
    def charts(self) -> Dict[str, ChartHandle]:
        return dict(self._charts)

    def _chart(self, name: str) -> ChartHandle:
        if self._containers.get(name) is None:
            raise RenderPreconditionError(f"no container for '{name}'")
        handle = self._charts.get(name)
        if handle is None:
            raise RenderPreconditionError(f"no chart for '{name}'")
        return handle

    def _slot(self, name: str) -> TextSlot:
        slot = self._containers.get(name)
        if slot is None:
            raise RenderPreconditionError(f"no text slot '{name}'")
        return slot

    def _guarded(self, name: str, action: Callable[[], None]) -> None:
        try:
            action()
        except RenderPreconditionError as exc:
            LOGGER.debug("Skipping %s: %s", name, exc)

    def _create_missing(self, snapshot: Snapshot, view: Optional[DerivedView]) -> None:
        for name, spec in CHARTS.items():
            container = self._containers.get(name)
            if container is None or name in self._charts:
                continue
            self._charts[name] = self.library.create(container, spec, chart_rows(name, snapshot, view))

    def mount(self, snapshot: Snapshot, view: Optional[DerivedView] = None) -> None:
        """Create a chart for every registered container that has none yet."""
        self.apply(snapshot, view)

    def apply(self, snapshot: Snapshot, view: Optional[DerivedView] = None) -> None:
        """Push ``snapshot`` to every chart, creating charts for containers registered since the last call."""
        self._create_missing(snapshot, view)
        for name in CHARTS:
            if name == "cost_comparison" and view is not None:
                continue
            self._guarded(name, lambda name=name: self._chart(name).replace_data(chart_rows(name, snapshot, view)))
        self.set_text("kpi", format_kpi(snapshot))
        if view is not None:
            self.apply_view(view)

    def apply_view(self, view: DerivedView) -> None:
        """Refresh everything that depends only on derived values."""
        self._guarded(
            "cost_comparison",
            lambda: self._chart("cost_comparison").replace_data(_rows(view.cost_rows)),
        )
        self.apply_visibility(view.visible_series)
        self.set_text("badge", view.badge.text, view.badge.style)
        self.set_text("savings", f"Projected savings ${view.projected_savings:,.0f} / year")
        self.set_text("sparkline", view.sparkline)

    def apply_visibility(self, visible: Sequence[str]) -> None:
        def _apply() -> None:
            chart = self._chart("weekday")
            for series in CHARTS["weekday"].series:
                chart.set_series_visible(series.key, series.key in visible)

        self._guarded("weekday", _apply)

    def set_text(self, name: str, text: str, style: str = "") -> None:
        self._guarded(name, lambda: self._slot(name).set_text(text, style))
