"""Shared helper utilities for the telemetry test-suite."""

from .data import build_payload, stream_frame
from .mocks import (
    FakeChart,
    FakeChartLibrary,
    FakeHttpResponse,
    FakeScheduler,
    FakeSession,
    FakeSlot,
    FakeTransport,
    FakeTransportFactory,
)

__all__ = [
    "build_payload",
    "stream_frame",
    "FakeChart",
    "FakeChartLibrary",
    "FakeHttpResponse",
    "FakeScheduler",
    "FakeSession",
    "FakeSlot",
    "FakeTransport",
    "FakeTransportFactory",
]
