"""Pydantic schemas for request / response serialisation."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, RootModel

# Nominal task duration in milliseconds; only JSON numbers are accepted
Duration = Annotated[float, Field(ge=0, allow_inf_nan=False, strict=True)]


class TaskSubmission(BaseModel):
    """One ``(key, duration)`` pair inside a batch submission."""

    key: str
    duration: Duration


class TaskBatch(RootModel[list[TaskSubmission] | dict[str, Duration]]):
    """Body of ``POST /queue/tasks``.

    Accepts either a JSON object mapping key to duration, or a JSON array
    of ``{"key", "duration"}`` objects when the same key must be sent twice.
    Order is preserved in both forms.
    """

    def pairs(self) -> list[tuple[str, float]]:
        if isinstance(self.root, dict):
            return list(self.root.items())
        return [(item.key, item.duration) for item in self.root]


class SubmitResponse(BaseModel):
    status: str = "ok"
    accepted: int


class TaskView(BaseModel):
    key: str
    duration: float


class QueueStatusResponse(BaseModel):
    pending: list[TaskView] = Field(default_factory=list)
    running: list[TaskView] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    uptime_seconds: float


class SchedulerStatsResponse(BaseModel):
    max_concurrency: int
    pending: int
    running: int
    submitted: int
    completed: int
