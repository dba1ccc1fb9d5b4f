from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.live import Live

from dashboard.app import DashboardClient
from dashboard.derived import CompareMode, Controls, derive
from dashboard.normalize import fetch_or_demo
from dashboard.render import RenderingSync
from dashboard.terminal import TerminalChartLibrary, TerminalDashboard
from telemetry.settings import ClientSettings

from ..common import console, load_cli_settings

SNAPSHOT_WIDGETS = ["kpi", "badge", "savings", "sparkline", "weekday", "load_split", "cost_comparison", "time_series"]

dashboard_app = typer.Typer(help="Terminal dashboard consuming the telemetry stream")


def _client_settings(
    config: Optional[Path],
    url: Optional[str],
    price: Optional[float] = None,
    devices: Optional[int] = None,
    rate: Optional[float] = None,
) -> ClientSettings:
    settings = load_cli_settings(config).client
    if url:
        settings.base_url = url
    if price is not None:
        settings.price = price
    if devices is not None:
        settings.device_count = devices
    if rate is not None:
        settings.per_unit_rate = rate
    return settings


async def _watch(client: DashboardClient, layout: TerminalDashboard, mode: CompareMode, duration: Optional[float]) -> None:
    with Live(layout, console=console(), refresh_per_second=4):
        await client.start()
        client.set_compare_mode(mode)
        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            client.stop()


@dashboard_app.command("watch")
def watch(
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Server base URL"),
    price: Optional[float] = typer.Option(None, "--price", help="Price per kWh"),
    devices: Optional[int] = typer.Option(None, "--devices", help="Device count"),
    rate: Optional[float] = typer.Option(None, "--rate", help="Per-device consumption, kWh per day"),
    mode: CompareMode = typer.Option(CompareMode.BOTH, "--mode", help="Weekday series to show"),
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop after N seconds"),
    config: Optional[Path] = typer.Option(None, "--config", "-c"),
) -> None:
    """Follow the live stream and redraw the dashboard on every tick."""
    settings = _client_settings(config, url, price, devices, rate)
    layout = TerminalDashboard()
    client = DashboardClient(RenderingSync(TerminalChartLibrary(), layout.containers), settings)
    try:
        asyncio.run(_watch(client, layout, mode, duration))
    except KeyboardInterrupt:
        console().print("Stopped")
    console().print(f"Received {client.messages} stream messages")


@dashboard_app.command("snapshot")
def snapshot(
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Server base URL"),
    as_json: bool = typer.Option(False, "--json", help="Print the normalized snapshot as JSON"),
    config: Optional[Path] = typer.Option(None, "--config", "-c"),
) -> None:
    """Fetch the current snapshot once (demo data when the server is unreachable)."""
    settings = _client_settings(config, url)
    current = fetch_or_demo(settings.snapshot_url, settings.snapshot_timeout_s)
    if as_json:
        console().print_json(json.dumps(current.to_payload()))
        return

    controls = Controls(price=settings.price, device_count=settings.device_count, per_unit_rate=settings.per_unit_rate)
    view = derive(current, controls, base_price=settings.base_price, savings_fraction=settings.savings_fraction)
    layout = TerminalDashboard(SNAPSHOT_WIDGETS)
    RenderingSync(TerminalChartLibrary(), layout.containers).mount(current, view)
    console().print(layout)
