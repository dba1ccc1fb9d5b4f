"""Synthetic metrics generator owning the canonical telemetry snapshot."""
from __future__ import annotations

import logging
import math
import random
import time
from typing import Callable, List, Optional

from .schemas import KPI, CostRow, LoadSplitRow, SeriesPoint, Snapshot, WeekdayRow
from .settings import GeneratorSettings

LOGGER = logging.getLogger(__name__)

# Value clamps keep every chart inside a fixed axis range.
SERIES_MIN = 69
SERIES_MAX = 81
LOW_THRESHOLD = 73
HIGH_THRESHOLD = 79
WEEKDAY_B_MIN = 10
WEEKDAY_B_MAX = 32
SPLIT_MIN = 8
SPLIT_MAX = 70

WEEKDAY_SEED = (
    ("Mon", 42, 22),
    ("Tue", 40, 21),
    ("Wed", 44, 23),
    ("Thu", 41, 22),
    ("Fri", 38, 20),
)
# (label, base overnight share, oscillation swing)
SPLIT_SEED = (
    ("Typical (before)", 40, 5),
    ("Optimized", 18, 8),
)
COST_SEED = (
    ("400", 355, 127),
    ("800", 709, 253),
    ("1200", 1112, 397),
    ("1500", 1934, 692),
)
KPI_SEED = {
    "reduction_pct": 64,
    "payback_label": "< 4 mo",
    "log_retention_days": 14,
    "device_scale": 1000,
}
KPI_SWING = 3


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def now_ms() -> int:
    return int(time.time() * 1000)


def seed_series(
    end_ms: int,
    rng: random.Random,
    points: int = 15,
    spacing_ms: int = 5000,
) -> List[SeriesPoint]:
    """Return ``points`` samples spaced ``spacing_ms`` apart, the last one at ``end_ms``."""
    series = []
    for idx in range(points):
        ts = end_ms - (points - 1 - idx) * spacing_ms
        wave = 75 + 3.5 * math.sin(ts / 2500)
        noise = (rng.random() - 0.5) * 0.8
        series.append(
            SeriesPoint(
                timestamp=ts,
                value=round(clamp(wave + noise, SERIES_MIN, SERIES_MAX)),
                low_threshold=LOW_THRESHOLD,
                high_threshold=HIGH_THRESHOLD,
            )
        )
    return series


def seed_snapshot(
    end_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
    points: int = 15,
    spacing_ms: int = 5000,
) -> Snapshot:
    """Build the seed snapshot; also used by the dashboard as demo data."""
    rng = rng or random.Random()
    end_ms = now_ms() if end_ms is None else end_ms
    return Snapshot(
        kpi=KPI(**KPI_SEED),
        weekday_series=[WeekdayRow(label=label, value_a=a, value_b=b) for label, a, b in WEEKDAY_SEED],
        load_split=[LoadSplitRow(label=label, part_a=base, part_b=100 - base) for label, base, _ in SPLIT_SEED],
        cost_comparison=[CostRow(bucket=bucket, before=before, after=after) for bucket, before, after in COST_SEED],
        time_series=seed_series(end_ms, rng, points=points, spacing_ms=spacing_ms),
    )


class StateGenerator:
    """Single writer of the telemetry snapshot.

    Every :meth:`advance` builds a brand new :class:`Snapshot` and swaps the
    reference, so a snapshot handed out earlier is never modified afterwards.
    """

    def __init__(
        self,
        settings: Optional[GeneratorSettings] = None,
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.settings = settings or GeneratorSettings()
        self._rng = rng or random.Random()
        self._clock = clock
        self._ticks = 0
        self._snapshot = seed_snapshot(
            clock(),
            self._rng,
            points=self.settings.seed_points,
            spacing_ms=self.settings.seed_spacing_ms,
        )

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def snapshot(self) -> Snapshot:
        """The published snapshot; treat as read-only."""
        return self._snapshot

    def current(self) -> Snapshot:
        return self._snapshot.model_copy(deep=True)

    def _noise(self, amplitude: float) -> float:
        return (self._rng.random() - 0.5) * amplitude

    def _next_weekdays(self, wave: float) -> List[WeekdayRow]:
        rows = list(self._snapshot.weekday_series)
        if not rows:
            return rows
        last = rows[-1]
        value_b = round(clamp(20 + 5 * wave + self._noise(1.2), WEEKDAY_B_MIN, WEEKDAY_B_MAX))
        rows[-1] = last.model_copy(update={"value_b": value_b})
        return rows

    def _next_split(self, wave: float) -> List[LoadSplitRow]:
        rows = []
        for idx, row in enumerate(self._snapshot.load_split):
            _, base, swing = SPLIT_SEED[min(idx, len(SPLIT_SEED) - 1)]
            part_a = round(clamp(base + swing * wave + self._noise(1.5), SPLIT_MIN, SPLIT_MAX))
            rows.append(row.model_copy(update={"part_a": part_a, "part_b": 100 - part_a}))
        return rows

    def _next_series(self, ts: int, fast_wave: float) -> List[SeriesPoint]:
        series = list(self._snapshot.time_series)
        if series and ts <= series[-1].timestamp:
            ts = series[-1].timestamp + 1
        value = round(clamp(75 + 4.5 * fast_wave + self._noise(1.0), SERIES_MIN, SERIES_MAX))
        series.append(
            SeriesPoint(
                timestamp=ts,
                value=value,
                low_threshold=LOW_THRESHOLD,
                high_threshold=HIGH_THRESHOLD,
            )
        )
        return series[-self.settings.retention:]

    def advance(self) -> Snapshot:
        """Produce the next snapshot and publish it."""
        t = self._clock()
        wave = math.sin(t / 3000)
        fast_wave = math.sin(t / 2000)

        kpi = self._snapshot.kpi.model_copy(
            update={"reduction_pct": round(KPI_SEED["reduction_pct"] + KPI_SWING * wave)}
        )
        snapshot = Snapshot(
            kpi=kpi,
            weekday_series=self._next_weekdays(wave),
            load_split=self._next_split(wave),
            cost_comparison=list(self._snapshot.cost_comparison),
            time_series=self._next_series(t, fast_wave),
        )
        self._snapshot = snapshot
        self._ticks += 1
        LOGGER.debug("Tick %d published (%d series points)", self._ticks, len(snapshot.time_series))
        return snapshot
