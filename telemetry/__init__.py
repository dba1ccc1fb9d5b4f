"""Server side of the live telemetry dashboard."""

from __future__ import annotations

from pathlib import Path

APP_ROOT = Path(__file__).resolve().parents[1]
LOG_DIR = APP_ROOT / "logs"

__all__ = ["APP_ROOT", "LOG_DIR"]
