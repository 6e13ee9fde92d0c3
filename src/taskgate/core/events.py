"""Async event bus for decoupled communication between components.

The scheduler publishes task lifecycle events here so the API layer
(WebSocket streaming) can react without the scheduler knowing about it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Lifecycle events emitted by the scheduler."""

    TASK_SUBMITTED = "task.submitted"
    TASK_QUEUED = "task.queued"
    TASK_STARTED = "task.started"
    TASK_COMPLETED = "task.completed"
    TASK_PROMOTED = "task.promoted"


@dataclass(frozen=True)
class Event:
    """An immutable event carrying contextual payload."""

    event_type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


# Subscriber callable type
Subscriber = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """In-process async event bus.

    Subscribers are invoked concurrently via :func:`asyncio.gather` when
    an event is published.  A failing subscriber does **not** prevent
    other subscribers from executing.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._subscribers: dict[EventType, list[Subscriber]] = defaultdict(list)
        self._inflight: set[asyncio.Task[None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = loop

    def subscribe(self, event_type: EventType, handler: Subscriber) -> None:
        """Register *handler* for *event_type*."""
        self._subscribers[event_type].append(handler)

    def subscribe_all(self, handler: Subscriber) -> None:
        """Register *handler* for every event type."""
        for event_type in EventType:
            self.subscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType, handler: Subscriber) -> None:
        """Remove a previously registered handler."""
        with contextlib.suppress(ValueError):
            self._subscribers[event_type].remove(handler)

    async def publish(self, event: Event) -> None:
        """Dispatch *event* to all matching subscribers concurrently."""
        handlers = list(self._subscribers.get(event.event_type, []))
        if not handlers:
            return

        results = await asyncio.gather(*(h(event) for h in handlers), return_exceptions=True)
        for idx, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.error(
                    "Subscriber %s raised %s for event %s",
                    handlers[idx].__qualname__,
                    result,
                    event.event_type.value,
                )

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Deliver events published from other threads on *loop*."""
        self._loop = loop

    def publish_nowait(self, event: Event) -> asyncio.Task[None] | None:
        """Schedule :meth:`publish` from synchronous code on any thread.

        On the loop thread the delivery task is returned.  From another
        thread the event is handed to the bound loop and ``None`` is
        returned.  Never raises: with no loop to deliver on, the event is
        logged and dropped.
        """
        if not self._subscribers.get(event.event_type):
            return None
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            if self._loop is None:
                self._loop = running
            return self._schedule(event)

        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("Dropping event %s: no event loop bound", event.event_type.value)
            return None
        try:
            loop.call_soon_threadsafe(self._schedule, event)
        except RuntimeError:
            # Loop closed between the check and the call
            logger.warning("Dropping event %s: event loop closed", event.event_type.value)
        return None

    def _schedule(self, event: Event) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self.publish(event))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def drain(self) -> None:
        """Wait for every event scheduled via :meth:`publish_nowait`."""
        while True:
            # Let handoffs from other threads reach the loop first
            await asyncio.sleep(0)
            if not self._inflight:
                return
            await asyncio.gather(*self._inflight)
