"""Pydantic models for the telemetry snapshot and stream messages."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class KPI(_CamelModel):
    reduction_pct: int = Field(..., description="Overnight load reduction in percent")
    payback_label: str = Field(..., description="Human readable payback period")
    log_retention_days: int = Field(..., description="Days of logs kept on the device")
    device_scale: int = Field(..., description="Number of managed devices")


class WeekdayRow(_CamelModel):
    label: str
    value_a: float
    value_b: float


class LoadSplitRow(_CamelModel):
    label: str
    part_a: int
    part_b: int


class CostRow(_CamelModel):
    bucket: str
    before: float
    after: float


class SeriesPoint(_CamelModel):
    timestamp: int = Field(..., description="Unix timestamp in milliseconds")
    value: float
    low_threshold: float
    high_threshold: float


class Snapshot(_CamelModel):
    kpi: KPI
    weekday_series: List[WeekdayRow] = Field(default_factory=list)
    load_split: List[LoadSplitRow] = Field(default_factory=list)
    cost_comparison: List[CostRow] = Field(default_factory=list)
    time_series: List[SeriesPoint] = Field(default_factory=list)


class StreamMessage(_CamelModel):
    type: Literal["snapshot", "tick"]
    state: Snapshot


class HealthResponse(BaseModel):
    status: str = "ok"
    subscribers: int = 0
    ticks: int = 0
