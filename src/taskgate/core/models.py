"""Domain models for the TaskGate scheduler.

Defines the :class:`Task` value object and the immutable
:class:`SchedulerSnapshot` handed out to readers.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Zero-argument completion signal passed to :meth:`Task.execute`
CompletionCallback = Callable[[], None]


@dataclass(frozen=True)
class Task:
    """A named unit of work with a nominal duration in milliseconds.

    Two tasks may share a :attr:`key`; :attr:`id` tells individual
    submissions apart.  The work itself is a timed placeholder: the
    scheduler only cares about identity and when completion fires.
    """

    key: str
    duration: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def execute(
        self,
        on_complete: CompletionCallback,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.TimerHandle:
        """Start the task and fire *on_complete* once after :attr:`duration` ms.

        Returns immediately; completion is delivered by the event loop.
        """
        loop = loop or asyncio.get_running_loop()
        logger.info(
            "Task %s started. Running for %sms",
            self.key,
            self.duration,
            extra={"task_key": self.key, "task_id": self.id},
        )
        return loop.call_later(self.duration / 1000, on_complete)

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "duration": self.duration}


@dataclass(frozen=True)
class SchedulerSnapshot:
    """Point-in-time copy of the scheduler's pending and running tasks."""

    pending: tuple[Task, ...] = ()
    running: tuple[Task, ...] = ()

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """Serialisable ``{"pending": [...], "running": [...]}`` view."""
        return {
            "pending": [t.to_dict() for t in self.pending],
            "running": [t.to_dict() for t in self.running],
        }
