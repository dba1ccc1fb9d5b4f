from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from ..common import console, load_cli_settings

server_app = typer.Typer(help="Run the telemetry server")


@server_app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h"),
    port: Optional[int] = typer.Option(None, "--port", "-p"),
    tick: Optional[float] = typer.Option(None, "--tick", help="Generator tick interval in seconds"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
) -> None:
    """Serve the snapshot endpoint and the live event stream."""
    from telemetry.server import start_server

    settings = load_cli_settings(config)
    if tick is not None:
        if tick <= 0:
            console().print("[red]--tick must be greater than zero[/]")
            raise typer.Exit(code=2)
        settings.generator.tick_interval_s = tick

    host = host or settings.server.host
    port = port or settings.server.port
    console().print(f"Starting telemetry server on [cyan]http://{host}:{port}[/]")
    try:
        start_server(host, port, settings=settings)
    except KeyboardInterrupt:
        console().print("Shutting down")
