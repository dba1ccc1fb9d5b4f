"""rich based chart library used by the terminal dashboard."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .render import CHARTS, TEXT_SLOTS, ChartSpec


def _format_cell(key: str, value: Any) -> str:
    if key == "timestamp" and isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000).strftime("%H:%M:%S")
        except (OverflowError, OSError, ValueError):
            return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class TerminalChart:
    """Tabular stand-in for a chart: one column per visible series."""

    def __init__(self, spec: ChartSpec, rows: List[Dict[str, Any]], max_rows: int = 8) -> None:
        self.spec = spec
        self.rows = [dict(row) for row in rows]
        self.hidden: Set[str] = set()
        self.max_rows = max_rows

    def replace_data(self, rows: List[Dict[str, Any]]) -> None:
        self.rows = [dict(row) for row in rows]

    def set_series_visible(self, series_name: str, visible: bool) -> None:
        if visible:
            self.hidden.discard(series_name)
        else:
            self.hidden.add(series_name)

    def __rich__(self) -> Table:
        table = Table(expand=True, box=None)
        table.add_column(self.spec.x_key, style="bold")
        shown = [series for series in self.spec.series if series.key not in self.hidden]
        for series in shown:
            table.add_column(series.name, justify="right")
        for row in self.rows[-self.max_rows:]:
            table.add_row(
                _format_cell(self.spec.x_key, row.get(self.spec.x_key)),
                *(_format_cell(series.key, row.get(series.key, "")) for series in shown),
            )
        return table


class Region:
    """Named container a chart is mounted into."""

    def __init__(self, name: str, title: str) -> None:
        self.name = name
        self.title = title
        self.chart: Optional[TerminalChart] = None

    def __rich__(self) -> RenderableType:
        body: RenderableType = self.chart if self.chart is not None else Text("waiting for data", style="dim")
        return Panel(body, title=self.title, title_align="left")


class TextRegion:
    def __init__(self, name: str) -> None:
        self.name = name
        self.text = Text("")

    def set_text(self, text: str, style: str = "") -> None:
        self.text = Text(text, style=STYLE_MAP.get(style, style))

    def __rich__(self) -> Text:
        return self.text


STYLE_MAP = {
    "reduction": "bold green",
    "increase": "bold red",
    "neutral": "bold",
}


class TerminalChartLibrary:
    def create(self, container: Region, series_config: ChartSpec, initial_data: List[Dict[str, Any]]) -> TerminalChart:
        chart = TerminalChart(series_config, initial_data)
        container.chart = chart
        return chart


class TerminalDashboard:
    """Layout of regions; pass :attr:`containers` to :class:`RenderingSync`."""

    def __init__(self, widgets: Optional[List[str]] = None) -> None:
        names = widgets if widgets is not None else list(CHARTS) + list(TEXT_SLOTS)
        self.containers: Dict[str, Any] = {}
        for name in names:
            if name in CHARTS:
                self.containers[name] = Region(name, CHARTS[name].title)
            elif name in TEXT_SLOTS:
                self.containers[name] = TextRegion(name)
            else:
                raise KeyError(f"Unknown widget '{name}'")

    def __rich__(self) -> Group:
        header = [self.containers[name] for name in ("live", "kpi", "badge", "savings", "sparkline") if name in self.containers]
        charts = [self.containers[name] for name in CHARTS if name in self.containers]
        return Group(*header, *charts)
