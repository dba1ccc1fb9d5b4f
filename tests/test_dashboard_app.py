"""End-to-end tests of the client pipeline with fake transports."""

from __future__ import annotations

import asyncio
import random

import pytest

from tests.conftest import get_test_logger
from tests.helpers import FakeChartLibrary, FakeScheduler, FakeSlot, FakeTransportFactory, build_payload, stream_frame

from dashboard.app import DashboardClient
from dashboard.derived import Controls
from dashboard.normalize import build_demo
from dashboard.render import RenderingSync
from dashboard.subscriber import LIVE_COLOR, STALE_COLOR, ConnectionState
from telemetry.settings import ClientSettings

logger = get_test_logger(__name__)
logger.info("Starting tests for dashboard app module")


@pytest.fixture
def slots():
    return {name: FakeSlot() for name in ("kpi", "badge", "savings", "sparkline", "live")}


@pytest.fixture
def client(chart_library: FakeChartLibrary, scheduler: FakeScheduler, transports: FakeTransportFactory, slots) -> DashboardClient:
    containers = {"weekday": "weekday-el", "cost_comparison": "cost-el", **slots}
    return DashboardClient(
        RenderingSync(chart_library, containers),
        ClientSettings(base_url="http://test"),
        transport_factory=transports,
        scheduler=scheduler,
    )


def test_cold_start_then_stream(client: DashboardClient, chart_library, scheduler, transports, slots) -> None:
    client.mount(build_demo(1_700_000_000_000, random.Random(1)))
    client.connection.start()
    assert slots["live"].style.endswith(STALE_COLOR)
    assert transports.latest.url == "http://test/api/telemetry/stream"

    transports.latest.open()
    transports.latest.deliver(stream_frame(build_payload(), kind="snapshot"))

    assert client.messages == 1
    assert client.snapshot.kpi.device_scale == 250
    assert slots["badge"].text == "Savings 42%"
    assert slots["live"].style.endswith(LIVE_COLOR)
    assert chart_library.charts["weekday-el"].rows[0]["valueA"] == 40

    scheduler.advance(5.5)
    assert slots["live"].style.endswith(STALE_COLOR)


def test_bad_messages_are_ignored(client: DashboardClient, transports, slots) -> None:
    client.mount(build_demo(1_700_000_000_000))
    client.connection.start()
    transports.latest.open()
    transports.latest.deliver("{not json")
    transports.latest.deliver('{"type": "tick"}')
    assert client.messages == 0
    assert not client.indicator.live


def test_partial_stream_state_is_normalized(client: DashboardClient, transports) -> None:
    client.mount(build_demo(1_700_000_000_000))
    client.connection.start()
    transports.latest.open()
    transports.latest.deliver(stream_frame({"loadSplit": [{"label": "x", "partA": 12}, {"label": "y", "partA": 33}]}))
    assert [row.part_b for row in client.snapshot.load_split] == [88, 67]
    assert len(client.snapshot.weekday_series) == 5


def test_transport_error_turns_indicator_stale(client: DashboardClient, transports, scheduler) -> None:
    client.mount(build_demo(1_700_000_000_000))
    client.connection.start()
    transports.latest.open()
    transports.latest.deliver(stream_frame())
    assert client.indicator.live
    transports.latest.fail()
    assert not client.indicator.live
    assert client.connection.state is ConnectionState.ERRORED


def test_price_changes_rescale_costs(client: DashboardClient, chart_library) -> None:
    client.mount(build_demo(1_700_000_000_000))
    chart = chart_library.charts["cost-el"]
    client.set_price(0.32)
    assert chart.rows[1]["before"] == 1418
    client.set_price(0.16)
    assert chart.rows[1]["before"] == 709


def test_post_layout_recompute_picks_up_controls(client: DashboardClient, scheduler, slots) -> None:
    client.mount(build_demo(1_700_000_000_000))
    client.engine.controls = Controls(device_count=10, per_unit_rate=1.0, price=0.16)
    scheduler.advance(client.settings.post_layout_delay_s)
    assert slots["savings"].text == "Projected savings $234 / year"


def test_visibility_and_stop(client: DashboardClient, transports, scheduler) -> None:
    client.mount(build_demo(1_700_000_000_000))
    client.connection.start()
    transports.latest.open()
    client.set_visible(False)
    assert client.connection.state is ConnectionState.SUSPENDED
    client.set_visible(True)
    assert len(transports.live) == 1
    client.stop()
    assert transports.live == []
    assert scheduler.pending == []


def test_start_fetches_snapshot_off_loop(chart_library, transports, slots) -> None:
    """``start`` runs the blocking fetch in an executor, then connects."""
    calls = []

    def fetcher(url: str, timeout: float):
        calls.append((url, timeout))
        return build_demo(1_700_000_000_000)

    async def scenario() -> DashboardClient:
        client = DashboardClient(
            RenderingSync(chart_library, dict(slots)),
            ClientSettings(base_url="http://test/"),
            transport_factory=transports,
            fetcher=fetcher,
        )
        await client.start()
        state = client.connection.state
        client.stop()
        assert state is ConnectionState.CONNECTING
        return client

    asyncio.run(scenario())
    assert calls == [("http://test/api/telemetry/snapshot", 5.0)]


def test_oversized_numbers_in_stream_keep_connection_open(client: DashboardClient, transports) -> None:
    client.mount(build_demo(1_700_000_000_000))
    client.connection.start()
    transports.latest.open()
    payload = build_payload()
    payload["weekdaySeries"][0]["valueA"] = 10**400
    transports.latest.deliver(stream_frame(payload))

    assert client.messages == 1
    assert client.snapshot.weekday_series[0].value_a == 42
    assert client.connection.state is ConnectionState.OPEN
