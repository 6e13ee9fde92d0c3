"""API route definitions — separated from the app factory for testability.

The scheduler, WebSocket manager and settings are created by
:func:`taskgate.api.app.create_app` and stored on ``app.state``; the
routes reach them through FastAPI dependencies.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from starlette.websockets import WebSocket, WebSocketDisconnect

from taskgate import __version__
from taskgate.api.schemas import (
    HealthResponse,
    QueueStatusResponse,
    SchedulerStatsResponse,
    SubmitResponse,
    TaskBatch,
    TaskView,
)
from taskgate.api.websocket import ConnectionManager
from taskgate.core.models import Task
from taskgate.core.scheduler import Scheduler

logger = logging.getLogger(__name__)

router = APIRouter()


def get_scheduler(request: Request) -> Scheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise RuntimeError("Scheduler not configured")
    return scheduler


def _get_ws_manager(ws: WebSocket) -> ConnectionManager:
    manager = getattr(ws.app.state, "ws_manager", None)
    if manager is None:
        raise RuntimeError("WebSocket manager not configured")
    return manager


SchedulerDep = Annotated[Scheduler, Depends(get_scheduler)]


# ------------------------------------------------------------------
# Health & stats
# ------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, tags=["ops"])
async def health(request: Request) -> HealthResponse:
    return HealthResponse(
        version=__version__,
        uptime_seconds=round(time.monotonic() - request.app.state.started_at, 2),
    )


@router.get("/stats", response_model=SchedulerStatsResponse, tags=["ops"])
async def stats(scheduler: SchedulerDep) -> SchedulerStatsResponse:
    snapshot = scheduler.snapshot()
    return SchedulerStatsResponse(
        max_concurrency=scheduler.max_concurrency,
        pending=len(snapshot.pending),
        running=len(snapshot.running),
        submitted=scheduler.submitted_count,
        completed=scheduler.completed_count,
    )


# ------------------------------------------------------------------
# Queue
# ------------------------------------------------------------------


@router.post(
    "/queue/tasks",
    response_model=SubmitResponse,
    status_code=status.HTTP_200_OK,
    tags=["queue"],
)
async def submit_tasks(body: TaskBatch, scheduler: SchedulerDep) -> SubmitResponse:
    """Submit a batch of tasks; each one starts now or waits in the queue."""
    tasks = [Task(key=key, duration=duration) for key, duration in body.pairs()]
    scheduler.append(tasks)
    return SubmitResponse(accepted=len(tasks))


@router.get("/queue/status", response_model=QueueStatusResponse, tags=["queue"])
async def queue_status(scheduler: SchedulerDep) -> QueueStatusResponse:
    snapshot = scheduler.snapshot()
    return QueueStatusResponse(
        pending=[TaskView(key=t.key, duration=t.duration) for t in snapshot.pending],
        running=[TaskView(key=t.key, duration=t.duration) for t in snapshot.running],
    )


@router.websocket("/queue/events")
async def queue_events(ws: WebSocket) -> None:
    """Stream scheduler lifecycle events to the client as JSON."""
    api_key: str | None = ws.app.state.settings.api_key
    if api_key:
        provided = ws.headers.get("X-API-Key") or ws.query_params.get("api_key") or ""
        if not secrets.compare_digest(provided, api_key):
            await ws.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    manager = _get_ws_manager(ws)
    await manager.connect(ws)
    try:
        while True:
            # Client messages are ignored; receiving detects disconnects
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(ws)
