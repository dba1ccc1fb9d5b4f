from __future__ import annotations

import typer

from .common import console, configure_logging
from .subapps.dashboard import dashboard_app
from .subapps.server import server_app

app = typer.Typer(help="Live telemetry command line interface")
app.add_typer(server_app, name="server")
app.add_typer(dashboard_app, name="dashboard")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    configure_logging("cli")
    if ctx.invoked_subcommand is None:
        _show_commands()


def _show_commands() -> None:
    commands = [
        "python -m cli.app server serve --host 127.0.0.1 --port 3000",
        "python -m cli.app server serve --tick 1.0 --config config.yaml",
        "python -m cli.app dashboard watch --url http://127.0.0.1:3000 --price 0.20",
        "python -m cli.app dashboard watch --mode b --duration 60",
        "python -m cli.app dashboard snapshot --json",
    ]
    console().print("Available commands:")
    for cmd in commands:
        console().print(f"  • [cyan]{cmd}[/]")


if __name__ == "__main__":
    app()
