"""FastAPI application serving the telemetry snapshot and live stream."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from uvicorn import Config, Server

from .generator import StateGenerator
from .schemas import HealthResponse
from .settings import Settings, load_settings, setup_logging
from .stream import STREAM_HEADERS, TickHub, event_stream

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def get_hub(request: Request) -> TickHub:
    return request.app.state.hub


@router.get("/api/telemetry/snapshot", response_class=JSONResponse)
async def api_snapshot(request: Request) -> JSONResponse:
    snapshot = get_hub(request).current()
    return JSONResponse(snapshot.to_payload(), headers={"Cache-Control": "no-store"})


@router.get("/api/telemetry/stream")
async def api_stream(request: Request) -> StreamingResponse:
    hub = get_hub(request)
    keepalive_s = request.app.state.settings.server.keepalive_s
    return StreamingResponse(
        event_stream(hub, request.is_disconnected, keepalive_s=keepalive_s),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    hub = get_hub(request)
    return HealthResponse(subscribers=hub.subscriber_count, ticks=hub.generator.ticks)


def create_app(settings: Optional[Settings] = None, hub: Optional[TickHub] = None) -> FastAPI:
    """Build the application; the tick loop runs for the lifetime of the app."""
    settings = settings or load_settings()
    if hub is None:
        hub = TickHub(
            StateGenerator(settings.generator),
            interval_s=settings.generator.tick_interval_s,
            queue_size=settings.server.subscriber_queue_size,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        hub.start()
        try:
            yield
        finally:
            await hub.stop()

    app = FastAPI(title="Live telemetry", lifespan=lifespan)
    app.state.settings = settings
    app.state.hub = hub
    app.add_middleware(GZipMiddleware, minimum_size=settings.server.gzip_minimum_size)
    app.include_router(router)
    return app


def start_server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Start the telemetry server via uvicorn."""
    setup_logging()
    settings = settings or load_settings()
    host = host or settings.server.host
    port = port or settings.server.port

    app = create_app(settings)
    config = Config(app=app, host=host, port=port, log_level="info")
    server = Server(config=config)
    LOGGER.info("Serving telemetry on http://%s:%d", host, port)
    asyncio.run(server.serve())
