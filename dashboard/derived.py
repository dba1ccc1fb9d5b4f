"""Derived display values computed from a snapshot plus user controls."""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from telemetry.schemas import CostRow, Snapshot, WeekdayRow

BASE_PRICE = 0.16
SAVINGS_FRACTION = 0.40
DAYS_PER_YEAR = 365
SPARKLINE_POINTS = 30
SPARK_GLYPHS = "▁▂▃▄▅▆▇█"


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class CompareMode(str, enum.Enum):
    A_ONLY = "a"
    B_ONLY = "b"
    BOTH = "both"


@dataclass(frozen=True)
class Controls:
    price: float = BASE_PRICE
    device_count: int = 1000
    per_unit_rate: float = 1.2
    compare_mode: CompareMode = CompareMode.BOTH


@dataclass(frozen=True)
class Badge:
    text: str
    style: str
    delta: float = 0.0


@dataclass(frozen=True)
class DerivedView:
    sum_a: float
    sum_b: float
    delta: float
    badge: Badge
    cost_rows: Tuple[CostRow, ...]
    scale_factor: float
    projected_savings: float
    visible_series: Tuple[str, ...]
    sparkline_values: Tuple[float, ...] = field(default_factory=tuple)

    @property
    def sparkline(self) -> str:
        return render_sparkline(self.sparkline_values)


def weekday_delta(rows: Sequence[WeekdayRow]) -> Tuple[float, float, float]:
    """Return ``(sum_a, sum_b, delta)`` with ``delta = (sum_b - sum_a) / sum_a``."""
    sum_a = sum(row.value_a for row in rows)
    sum_b = sum(row.value_b for row in rows)
    delta = (sum_b - sum_a) / sum_a if sum_a != 0 else 0.0
    return sum_a, sum_b, delta


def delta_badge(delta: float) -> Badge:
    pct = round_half_up(abs(delta) * 100)
    if delta < 0:
        return Badge(f"Savings {pct}%", "reduction", delta)
    if delta > 0:
        return Badge(f"Increase {pct}%", "increase", delta)
    return Badge("No change 0%", "neutral", delta)


def compare_badge(mode: CompareMode, sum_a: float, sum_b: float, delta: float) -> Badge:
    if mode is CompareMode.A_ONLY:
        return Badge(f"Baseline {sum_a:g}", "neutral", 0.0)
    if mode is CompareMode.B_ONLY:
        return Badge(f"Optimized {sum_b:g}", "neutral", 0.0)
    return delta_badge(delta)


def visible_series(mode: CompareMode) -> Tuple[str, ...]:
    if mode is CompareMode.A_ONLY:
        return ("valueA",)
    if mode is CompareMode.B_ONLY:
        return ("valueB",)
    return ("valueA", "valueB")


def scale_costs(rows: Sequence[CostRow], price: float, base_price: float = BASE_PRICE) -> Tuple[Tuple[CostRow, ...], float]:
    """Rescale baseline rows by ``price / base_price``; always start from unscaled rows."""
    factor = price / base_price
    scaled = tuple(
        row.model_copy(update={"before": round_half_up(row.before * factor), "after": round_half_up(row.after * factor)})
        for row in rows
    )
    return scaled, factor


def projected_savings(
    device_count: int,
    per_unit_rate: float,
    price: float,
    savings_fraction: float = SAVINGS_FRACTION,
) -> float:
    return device_count * per_unit_rate * DAYS_PER_YEAR * price * savings_fraction


def render_sparkline(values: Sequence[float]) -> str:
    if not values:
        return ""
    low, high = min(values), max(values)
    span = high - low
    top = len(SPARK_GLYPHS) - 1
    if span == 0:
        return SPARK_GLYPHS[top // 2] * len(values)
    return "".join(SPARK_GLYPHS[round((value - low) / span * top)] for value in values)


def derive(
    snapshot: Snapshot,
    controls: Controls,
    *,
    base_price: float = BASE_PRICE,
    savings_fraction: float = SAVINGS_FRACTION,
) -> DerivedView:
    """Pure function of its inputs."""
    sum_a, sum_b, delta = weekday_delta(snapshot.weekday_series)
    cost_rows, factor = scale_costs(snapshot.cost_comparison, controls.price, base_price)
    return DerivedView(
        sum_a=sum_a,
        sum_b=sum_b,
        delta=delta,
        badge=compare_badge(controls.compare_mode, sum_a, sum_b, delta),
        cost_rows=cost_rows,
        scale_factor=factor,
        projected_savings=projected_savings(
            controls.device_count, controls.per_unit_rate, controls.price, savings_fraction
        ),
        visible_series=visible_series(controls.compare_mode),
        sparkline_values=tuple(point.value for point in snapshot.time_series[-SPARKLINE_POINTS:]),
    )


class DerivedMetricsEngine:
    """Keeps the latest unscaled snapshot and controls; recomputes on either change."""

    def __init__(
        self,
        controls: Optional[Controls] = None,
        *,
        base_price: float = BASE_PRICE,
        savings_fraction: float = SAVINGS_FRACTION,
    ) -> None:
        self.controls = controls or Controls(price=base_price)
        self.base_price = base_price
        self.savings_fraction = savings_fraction
        self.snapshot: Optional[Snapshot] = None
        self.view: Optional[DerivedView] = None

    def recompute(self) -> Optional[DerivedView]:
        if self.snapshot is None:
            return None
        self.view = derive(
            self.snapshot,
            self.controls,
            base_price=self.base_price,
            savings_fraction=self.savings_fraction,
        )
        return self.view

    def update_snapshot(self, snapshot: Snapshot) -> Optional[DerivedView]:
        self.snapshot = snapshot
        return self.recompute()

    def update_controls(self, **changes: object) -> Optional[DerivedView]:
        if "compare_mode" in changes:
            changes["compare_mode"] = CompareMode(changes["compare_mode"])
        self.controls = replace(self.controls, **changes)
        return self.recompute()

    @property
    def baseline_costs(self) -> List[CostRow]:
        return list(self.snapshot.cost_comparison) if self.snapshot is not None else []
