"""FastAPI application factory.

Creates the scheduler and wires it, the event bus, and WebSocket event
streaming into the ASGI application.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from taskgate import __version__
from taskgate.api import routes
from taskgate.api.auth import APIKeyMiddleware
from taskgate.api.websocket import ConnectionManager
from taskgate.config import Settings
from taskgate.core.events import EventBus
from taskgate.core.scheduler import Executor, Scheduler
from taskgate.observability.logging import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, executor: Executor | None = None) -> FastAPI:
    """Build the configured FastAPI instance.

    *settings* defaults to :meth:`Settings.from_env`; *executor* replaces
    the timed placeholder used to run tasks.
    """
    settings = settings or Settings.from_env()
    event_bus = EventBus()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        # Worker-thread completions publish through the server loop
        event_bus.bind(asyncio.get_running_loop())
        yield

    app = FastAPI(
        title="TaskGate — Keyed Task Scheduler",
        description=(
            "Accepts named, timed tasks and runs them under a fixed concurrency "
            "limit.  Excess work and tasks whose key is already running are "
            "queued and promoted as slots free up."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # --- Authentication middleware ---
    app.add_middleware(APIKeyMiddleware, api_key=settings.api_key)

    # --- Scheduler & event streaming ---
    ws_manager = ConnectionManager()
    ws_manager.attach(event_bus)

    app.state.settings = settings
    app.state.event_bus = event_bus
    app.state.ws_manager = ws_manager
    app.state.scheduler = Scheduler(
        settings.scheduler_config(), executor=executor, event_bus=event_bus
    )
    app.state.started_at = time.monotonic()

    app.include_router(routes.router)

    logger.info("Scheduler ready (max concurrency %d)", settings.max_concurrency)
    return app


def main() -> None:
    """Entry-point for ``taskgate`` CLI."""
    settings = Settings.from_env()
    configure_logging(log_level=settings.log_level, json_format=settings.log_json)
    logger.info("HTTP server running. Access it at: http://localhost:%d/", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
