"""Error taxonomy of the dashboard client; every one is recovered locally."""
from __future__ import annotations


class TransportError(RuntimeError):
    """Stream connection refused, dropped or answered with the wrong response."""


class ShapeError(ValueError):
    """Payload field is missing or malformed; the normalizer substitutes a default."""


class RenderPreconditionError(LookupError):
    """Chart handle or its container is absent; the update is skipped."""
