"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from taskgate.core.events import EventBus
from taskgate.core.models import Task
from taskgate.core.scheduler import Scheduler, SchedulerConfig


class ManualExecutor:
    """Records started tasks; completion fires only when a test asks for it."""

    def __init__(self) -> None:
        self.started: list[Task] = []
        self._callbacks: dict[str, Callable[[], None]] = {}

    def __call__(self, task: Task, on_complete: Callable[[], None]) -> None:
        self.started.append(task)
        self._callbacks[task.id] = on_complete

    def complete(self, task: Task) -> None:
        self._callbacks.pop(task.id)()

    def complete_key(self, key: str) -> None:
        """Complete the in-flight task with *key*."""
        for task in self.started:
            if task.key == key and task.id in self._callbacks:
                self.complete(task)
                return
        raise AssertionError(f"No in-flight task with key {key!r}")

    @property
    def in_flight(self) -> list[Task]:
        return [t for t in self.started if t.id in self._callbacks]


@pytest.fixture()
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture()
def make_scheduler(executor: ManualExecutor) -> Callable[..., Scheduler]:
    def _make(max_concurrency: int = 2, event_bus: EventBus | None = None) -> Scheduler:
        return Scheduler(
            SchedulerConfig(max_concurrency=max_concurrency),
            executor=executor,
            event_bus=event_bus,
        )

    return _make
