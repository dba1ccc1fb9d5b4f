"""Shared pytest configuration and fixtures for the telemetry suite."""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Dict, Iterable

import pytest

from tests.helpers import FakeChartLibrary, FakeScheduler, FakeTransportFactory
from telemetry.generator import StateGenerator
from telemetry.settings import GeneratorSettings

LOGS_ROOT = Path(__file__).resolve().parents[1] / "logs" / "tests"
SESSION_LOG = LOGS_ROOT / "pytest.session.log"
_MODULE_HANDLERS: Dict[str, logging.Handler] = {}


def _initialise_logging() -> None:
    LOGS_ROOT.mkdir(parents=True, exist_ok=True)
    (LOGS_ROOT / ".gitkeep").touch(exist_ok=True)

    handler = logging.FileHandler(SESSION_LOG, mode="w", encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)


def get_test_logger(module_name: str) -> logging.Logger:
    """Return a logger writing into ``logs/tests/<module>.log``."""
    normalised = module_name.replace("tests.", "")
    logger = logging.getLogger(f"tests.{normalised}")
    logger.setLevel(logging.INFO)
    if normalised not in _MODULE_HANDLERS:
        LOGS_ROOT.mkdir(parents=True, exist_ok=True)
        log_path = LOGS_ROOT / f"{normalised}.log"
        handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
        _MODULE_HANDLERS[normalised] = handler
    return logger


@pytest.hookimpl(tryfirst=True)
def pytest_configure(config: pytest.Config) -> None:  # noqa: D401 - pytest hook
    _initialise_logging()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Iterable[pytest.TestReport]:
    outcome = yield
    report = outcome.get_result()
    if report.outcome != "failed":
        return
    module = getattr(item, "module", None)
    module_name = getattr(module, "__name__", "tests")
    target = LOGS_ROOT / f"{module_name.split('.')[-1]}.log"
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("a", encoding="utf-8") as handle:
        handle.write("\n=== TEST FAILURE ===\n")
        handle.write(f"nodeid: {item.nodeid}\n")
        handle.write(f"phase: {report.when}\n")
        handle.write(str(report.longrepr))
        handle.write("\n")


class FakeClock:
    """Millisecond clock advancing by a fixed step on every read."""

    def __init__(self, start_ms: int = 1_700_000_000_000, step_ms: int = 1200) -> None:
        self.now = start_ms
        self.step = step_ms

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def generator(fake_clock: FakeClock) -> StateGenerator:
    return StateGenerator(GeneratorSettings(retention=20), rng=random.Random(7), clock=fake_clock)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def chart_library() -> FakeChartLibrary:
    return FakeChartLibrary()


@pytest.fixture(autouse=True)
def clear_telemetry_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in ("TELEMETRY_HOST", "TELEMETRY_PORT"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TELEMETRY_CONFIG", str(tmp_path / "absent-config.yaml"))


__all__ = [
    "FakeClock",
    "get_test_logger",
]
