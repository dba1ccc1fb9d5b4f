"""Tests for the synthetic state generator."""

from __future__ import annotations

import random

from tests.conftest import get_test_logger

from telemetry.generator import (
    HIGH_THRESHOLD,
    LOW_THRESHOLD,
    SERIES_MAX,
    SERIES_MIN,
    SPLIT_MAX,
    SPLIT_MIN,
    WEEKDAY_B_MAX,
    WEEKDAY_B_MIN,
    StateGenerator,
    seed_snapshot,
)
from telemetry.settings import GeneratorSettings

logger = get_test_logger(__name__)
logger.info("Starting tests for generator module")


def test_seed_snapshot_shape() -> None:
    snapshot = seed_snapshot(1_700_000_000_000, random.Random(1))
    assert [row.label for row in snapshot.weekday_series] == ["Mon", "Tue", "Wed", "Thu", "Fri"]
    assert len(snapshot.load_split) == 2
    assert all(row.part_a + row.part_b == 100 for row in snapshot.load_split)
    assert len(snapshot.time_series) == 15
    assert snapshot.time_series[-1].timestamp == 1_700_000_000_000
    assert snapshot.time_series[1].timestamp - snapshot.time_series[0].timestamp == 5000
    assert set(snapshot.kpi.to_payload()) == {"reductionPct", "paybackLabel", "logRetentionDays", "deviceScale"}


def test_ticks_respect_invariants(generator: StateGenerator) -> None:
    """Every tick keeps the split at 100%, the window capped and ordered, values clamped."""
    logger.info("Running 200 generator ticks")
    for _ in range(200):
        snapshot = generator.advance()
        assert all(row.part_a + row.part_b == 100 for row in snapshot.load_split)
        assert all(SPLIT_MIN <= row.part_a <= SPLIT_MAX for row in snapshot.load_split)

        series = snapshot.time_series
        assert len(series) <= generator.settings.retention
        stamps = [point.timestamp for point in series]
        assert all(b > a for a, b in zip(stamps, stamps[1:]))
        assert all(SERIES_MIN <= point.value <= SERIES_MAX for point in series)
        assert all(point.low_threshold == LOW_THRESHOLD and point.high_threshold == HIGH_THRESHOLD for point in series)

        assert WEEKDAY_B_MIN <= snapshot.weekday_series[-1].value_b <= WEEKDAY_B_MAX
        assert 61 <= snapshot.kpi.reduction_pct <= 67
    assert len(generator.snapshot.time_series) == generator.settings.retention
    assert generator.ticks == 200


def test_window_drops_oldest_first(generator: StateGenerator) -> None:
    first = generator.snapshot.time_series[0].timestamp
    for _ in range(generator.settings.retention):
        generator.advance()
    stamps = [point.timestamp for point in generator.snapshot.time_series]
    assert first not in stamps
    assert stamps == sorted(stamps)


def test_published_snapshot_is_never_mutated(generator: StateGenerator) -> None:
    before = generator.snapshot
    payload = before.to_payload()
    generator.advance()
    assert generator.snapshot is not before
    assert before.to_payload() == payload


def test_current_returns_independent_copy(generator: StateGenerator) -> None:
    copy = generator.current()
    copy.load_split[0].part_a = 99
    assert generator.snapshot.load_split[0].part_a != 99


def test_stalled_clock_keeps_timestamps_increasing() -> None:
    generator = StateGenerator(GeneratorSettings(retention=30), rng=random.Random(3), clock=lambda: 1_000_000)
    for _ in range(10):
        generator.advance()
    stamps = [point.timestamp for point in generator.snapshot.time_series]
    assert all(b > a for a, b in zip(stamps, stamps[1:]))


def test_only_last_weekday_moves(generator: StateGenerator) -> None:
    seed_rows = generator.snapshot.weekday_series
    snapshot = generator.advance()
    assert snapshot.weekday_series[:4] == seed_rows[:4]
    assert snapshot.weekday_series[-1].value_a == seed_rows[-1].value_a
