"""Reconcile arbitrary payloads into a fully shaped, render-safe snapshot."""
from __future__ import annotations

import json
import logging
import math
import random
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from telemetry.generator import HIGH_THRESHOLD, LOW_THRESHOLD, now_ms, seed_snapshot
from telemetry.schemas import KPI, CostRow, LoadSplitRow, SeriesPoint, Snapshot, WeekdayRow

from .errors import ShapeError

LOGGER = logging.getLogger(__name__)

WEEKDAY_ROWS = 5
LOAD_SPLIT_ROWS = 2
RETENTION = 120
# Largest integer a JSON number carries exactly.
MAX_MAGNITUDE = 2**53
# Epoch milliseconds up to the end of year 9999.
MAX_TIMESTAMP_MS = 253_402_300_799_999


def build_demo(now: Optional[int] = None, rng: Optional[random.Random] = None) -> Snapshot:
    """Locally generated stand-in used whenever live data is unavailable."""
    return seed_snapshot(now_ms() if now is None else now, rng or random.Random())


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ShapeError(f"{name} is not a number: {value!r}")
    try:
        magnitude = abs(float(value))
    except OverflowError as exc:
        raise ShapeError(f"{name} is out of range") from exc
    if not math.isfinite(magnitude) or magnitude > MAX_MAGNITUDE:
        raise ShapeError(f"{name} is not a finite number in range: {value!r}")
    return value


def _timestamp(value: Any) -> int:
    timestamp = int(_number(value, "timeSeries.timestamp"))
    if not 0 < timestamp <= MAX_TIMESTAMP_MS:
        raise ShapeError(f"timeSeries.timestamp outside epoch range: {timestamp}")
    return timestamp


def _text(value: Any, name: str) -> str:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ShapeError(f"{name} is not a label: {value!r}")


def _rows(value: Any, name: str) -> List[Mapping[str, Any]]:
    if not isinstance(value, list):
        raise ShapeError(f"{name} is not a list")
    return [row if isinstance(row, Mapping) else {} for row in value]


def _kpi(raw: Any, demo: KPI) -> KPI:
    if not isinstance(raw, Mapping):
        raise ShapeError("kpi is not a mapping")
    merged = demo.to_payload()
    for key, default in merged.items():
        value = raw.get(key)
        try:
            if isinstance(default, str):
                merged[key] = _text(value, f"kpi.{key}")
            else:
                merged[key] = round(_number(value, f"kpi.{key}"))
        except ShapeError as exc:
            LOGGER.debug("Keeping default for %s", exc)
    return KPI.model_validate(merged)


def _weekdays(raw: Any, demo: List[WeekdayRow]) -> List[WeekdayRow]:
    rows = _rows(raw, "weekdaySeries")
    if len(rows) != WEEKDAY_ROWS:
        raise ShapeError(f"weekdaySeries has {len(rows)} rows, expected {WEEKDAY_ROWS}")
    result = []
    for row, fallback in zip(rows, demo):
        fields: Dict[str, Any] = fallback.to_payload()
        for key, check in (("label", _text), ("valueA", _number), ("valueB", _number)):
            try:
                fields[key] = check(row.get(key), f"weekdaySeries.{key}")
            except ShapeError as exc:
                LOGGER.debug("Keeping default for %s", exc)
        result.append(WeekdayRow.model_validate(fields))
    return result


def _load_split(raw: Any, demo: List[LoadSplitRow]) -> List[LoadSplitRow]:
    rows = _rows(raw, "loadSplit")
    if len(rows) != LOAD_SPLIT_ROWS:
        raise ShapeError(f"loadSplit has {len(rows)} rows, expected {LOAD_SPLIT_ROWS}")
    result = []
    for row, fallback in zip(rows, demo):
        try:
            label = _text(row.get("label"), "loadSplit.label")
        except ShapeError:
            label = fallback.label
        try:
            part_a = round(max(0.0, min(100.0, _number(row.get("partA"), "loadSplit.partA"))))
        except ShapeError:
            part_a = fallback.part_a
        result.append(LoadSplitRow(label=label, part_a=part_a, part_b=100 - part_a))
    return result


def _costs(raw: Any) -> List[CostRow]:
    result = []
    for row in _rows(raw, "costComparison"):
        try:
            result.append(
                CostRow(
                    bucket=_text(row.get("bucket"), "costComparison.bucket"),
                    before=_number(row.get("before"), "costComparison.before"),
                    after=_number(row.get("after"), "costComparison.after"),
                )
            )
        except ShapeError as exc:
            LOGGER.debug("Dropping cost row: %s", exc)
    if not result:
        raise ShapeError("costComparison has no usable rows")
    return result


def _series(raw: Any, now: int) -> List[SeriesPoint]:
    points: List[SeriesPoint] = []
    for row in _rows(raw, "timeSeries"):
        try:
            value = _number(row.get("value"), "timeSeries.value")
        except ShapeError as exc:
            LOGGER.debug("Dropping series point: %s", exc)
            continue
        try:
            timestamp = _timestamp(row.get("timestamp"))
            low = _number(row.get("lowThreshold"), "timeSeries.lowThreshold")
            high = _number(row.get("highThreshold"), "timeSeries.highThreshold")
            if low >= high:
                raise ShapeError(f"thresholds out of order: {low} >= {high}")
        except ShapeError as exc:
            LOGGER.debug("Repairing series point: %s", exc)
            try:
                timestamp = _timestamp(row.get("timestamp"))
            except ShapeError:
                timestamp = now
            low, high = LOW_THRESHOLD, HIGH_THRESHOLD
        if points and timestamp <= points[-1].timestamp:
            timestamp = points[-1].timestamp + 1
        points.append(SeriesPoint(timestamp=timestamp, value=value, low_threshold=low, high_threshold=high))
    if not points:
        raise ShapeError("timeSeries has no usable points")
    return points[-RETENTION:]


def normalize(payload: Any, *, now: Optional[int] = None, demo: Optional[Snapshot] = None) -> Snapshot:
    """Fill every field of ``payload`` that is missing or malformed from a demo snapshot."""
    now = now_ms() if now is None else now
    demo = demo or build_demo(now)
    if isinstance(payload, Snapshot):
        return payload.model_copy(deep=True)
    if not isinstance(payload, Mapping):
        LOGGER.debug("Payload is %s; using demo snapshot", type(payload).__name__)
        return demo

    builders: Dict[str, Callable[[Any], Any]] = {
        "kpi": lambda raw: _kpi(raw, demo.kpi),
        "weekday_series": lambda raw: _weekdays(raw, demo.weekday_series),
        "load_split": lambda raw: _load_split(raw, demo.load_split),
        "cost_comparison": _costs,
        "time_series": lambda raw: _series(raw, now),
    }
    aliases = {
        "kpi": "kpi",
        "weekday_series": "weekdaySeries",
        "load_split": "loadSplit",
        "cost_comparison": "costComparison",
        "time_series": "timeSeries",
    }
    fields: Dict[str, Any] = {}
    for name, build in builders.items():
        try:
            fields[name] = build(payload.get(aliases[name]))
        except ShapeError as exc:
            LOGGER.debug("Using demo %s: %s", aliases[name], exc)
            fields[name] = getattr(demo, name)
    return Snapshot(**fields)


def parse_message(raw: str) -> Optional[Mapping[str, Any]]:
    """Return the ``state`` mapping of one stream message, or ``None`` if unusable."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        LOGGER.debug("Ignoring undecodable stream message")
        return None
    if not isinstance(message, Mapping):
        return None
    state = message.get("state")
    return state if isinstance(state, Mapping) else None


def fetch_or_demo(
    url: str,
    timeout_s: float = 5.0,
    session: Optional[requests.Session] = None,
) -> Snapshot:
    """Fetch the snapshot endpoint once; any failure yields a fresh demo snapshot."""
    getter = session.get if session is not None else requests.get
    try:
        response = getter(url, timeout=timeout_s, headers={"Cache-Control": "no-store"})
        if not 200 <= response.status_code < 300:
            raise ShapeError(f"snapshot endpoint answered HTTP {response.status_code}")
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        LOGGER.warning("Snapshot fetch from %s failed (%s); using demo data", url, exc)
        return build_demo()
    return normalize(payload)
