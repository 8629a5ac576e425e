"""FastAPI application factory for the fan-out server.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan runs the bus subscriber for as long as the server is up.

There is no module-level `app`: settings are required (no default Redis
URL), so building the app at import time would make every import fail
without a configured environment. uvicorn runs it in factory mode:

    uvicorn orderrelay.main:create_app --factory --port 8080
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from orderrelay import __version__
from orderrelay.api import api_router
from orderrelay.config import Settings, get_settings
from orderrelay.connection import Shutdown
from orderrelay.realtime.broadcaster import FanoutBroadcaster
from orderrelay.realtime.registry import ClientRegistry
from orderrelay.realtime.subscriber import BusSubscriber
from orderrelay.realtime.websocket import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the bus subscriber; on shutdown, stop it and close clients."""
    state = app.state
    logger.info(
        "fanout.starting",
        version=__version__,
        topic=state.settings.bus_topic,
        port=state.settings.port,
    )
    subscriber_task = asyncio.create_task(state.subscriber.run())

    yield

    logger.info("fanout.shutdown", clients=len(state.registry))
    state.shutdown.trigger()

    for conn in state.registry.snapshot():
        with contextlib.suppress(Exception):
            await conn.websocket.close(code=1001)
        state.registry.remove(conn)

    try:
        await asyncio.wait_for(
            subscriber_task, timeout=state.settings.close_timeout_seconds + 1
        )
    except asyncio.TimeoutError:
        logger.warning("fanout.subscriber_stop_timeout")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the fan-out application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Order Relay",
        description="Fan-out of sequenced change events to WebSocket clients",
        version=__version__,
        lifespan=lifespan,
    )

    shutdown = Shutdown()
    registry = ClientRegistry()
    broadcaster = FanoutBroadcaster(registry)
    subscriber = BusSubscriber(
        settings.redis_url,
        settings.bus_topic,
        handler=broadcaster.on_message,
        shutdown=shutdown,
        backoff=settings.make_backoff(),
        liveness_interval=settings.liveness_interval_seconds,
        probe_timeout=settings.probe_timeout_seconds,
        close_timeout=settings.close_timeout_seconds,
    )

    app.state.settings = settings
    app.state.shutdown = shutdown
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.subscriber = subscriber

    app.include_router(api_router)
    app.include_router(ws_router)

    return app
