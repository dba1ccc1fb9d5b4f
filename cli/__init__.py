"""Typer-based CLI entry package for the live telemetry dashboard."""

from __future__ import annotations

from pathlib import Path

APP_ROOT = Path(__file__).resolve().parents[1]

__all__ = ["APP_ROOT"]
