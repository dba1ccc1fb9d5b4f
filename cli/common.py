from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from telemetry.settings import ConfigurationError, Settings, load_settings

from . import APP_ROOT

_CONSOLE = Console()
LOG_DIR = APP_ROOT / "logs" / "cli"


def console() -> Console:
    return _CONSOLE


def configure_logging(name: str, level: int = logging.INFO) -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_path = LOG_DIR / f"{name}.log"
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )


def load_cli_settings(config: Optional[Path]) -> Settings:
    try:
        return load_settings(config)
    except ConfigurationError as exc:
        console().print(f"[red]Configuration error:[/] {exc}")
        raise typer.Exit(code=2) from exc
