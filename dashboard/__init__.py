"""Client side of the live telemetry dashboard."""

from __future__ import annotations

from .errors import RenderPreconditionError, ShapeError, TransportError

__all__ = ["RenderPreconditionError", "ShapeError", "TransportError"]
