"""Task scheduler with concurrency control and per-key exclusivity.

The scheduler decides, for every submitted task, whether it runs now or
waits in the pending queue, and promotes pending work whenever a running
task completes.

All mutations happen under a single re-entrant lock.  Completion signals
are queued as events and drained in a loop by whichever caller holds the
lock, so an executor that completes synchronously never grows the stack.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections import Counter, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from taskgate.core.events import Event, EventType
from taskgate.core.models import CompletionCallback, SchedulerSnapshot, Task

if TYPE_CHECKING:
    from taskgate.core.events import EventBus

logger = logging.getLogger(__name__)

# Starts a task and arranges for the callback to fire once when it is done
Executor = Callable[[Task, CompletionCallback], Any]


def run_task(task: Task, on_complete: CompletionCallback) -> Any:
    """Default executor: the task's own timed placeholder."""
    return task.execute(on_complete)


@dataclass(frozen=True)
class SchedulerConfig:
    """Tuning knobs for the scheduler."""

    max_concurrency: int = 4

    def __post_init__(self) -> None:
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int):
            raise ValueError("max_concurrency must be an integer")
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be positive, got {self.max_concurrency}")


class SchedulerInvariantError(AssertionError):
    """Raised when the scheduler's internal state is inconsistent (a bug)."""


class Scheduler:
    """Admits tasks into a bounded running set and queues the rest.

    Admission rules, in order:

    1. running is full -> append to pending (capacity).
    2. a running task has the same key -> append to pending (exclusivity).
    3. otherwise start the task.

    When a running task completes it is removed and the first pending task
    whose key is not running is promoted.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        executor: Executor | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._executor = executor or run_task
        self._event_bus = event_bus
        self._lock = threading.RLock()
        self._pending: list[Task] = []
        self._running: list[Task] = []
        self._completions: deque[Task] = deque()
        self._draining = False
        self._submitted = 0
        self._completed = 0

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def submit(self, task: Task) -> None:
        """Start *task* now or append it to the pending queue."""
        with self._lock:
            self._emit(EventType.TASK_SUBMITTED, task)
            self._admit(task)
            self._submitted += 1

    def append(self, tasks: Iterable[Task]) -> None:
        """Submit *tasks* in order as one atomic batch."""
        batch = list(tasks)
        with self._lock:
            logger.info("Appending %d tasks", len(batch))
            for task in batch:
                self.submit(task)

    def promote(self) -> None:
        """Move the first eligible pending task into admission, if any."""
        with self._lock:
            logger.debug("Scheduling next task")
            if not self._pending:
                logger.debug("No pending tasks")
                return
            index = self._next_eligible_index()
            if index is None:
                logger.debug("No viable next task found")
                return
            task = self._pending.pop(index)
            self._emit(EventType.TASK_PROMOTED, task)
            self._admit(task, restore_at=index)

    def snapshot(self) -> SchedulerSnapshot:
        """Return an immutable copy of the pending and running tasks."""
        with self._lock:
            return SchedulerSnapshot(pending=tuple(self._pending), running=tuple(self._running))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def max_concurrency(self) -> int:
        return self._config.max_concurrency

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def running_count(self) -> int:
        with self._lock:
            return len(self._running)

    @property
    def submitted_count(self) -> int:
        return self._submitted

    @property
    def completed_count(self) -> int:
        return self._completed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _admit(self, task: Task, restore_at: int | None = None) -> bool:
        if len(self._running) >= self._config.max_concurrency:
            logger.info(
                "Max concurrency exceeded, %s is pending",
                task.key,
                extra={"task_key": task.key, "task_id": task.id},
            )
            self._pending.append(task)
            self._emit(EventType.TASK_QUEUED, task, reason="capacity")
            return False

        if any(running.key == task.key for running in self._running):
            logger.info(
                "Task %s is already running. Queuing",
                task.key,
                extra={"task_key": task.key, "task_id": task.id},
            )
            self._pending.append(task)
            self._emit(EventType.TASK_QUEUED, task, reason="duplicate_key")
            return False

        self._running.append(task)
        self._check_invariants()
        self._emit(EventType.TASK_STARTED, task)
        try:
            self._executor(task, functools.partial(self._on_complete, task))
        except Exception:
            # Undo the start; a promoted task regains its place in the queue
            if task in self._running:
                self._running.remove(task)
            if restore_at is not None:
                self._pending.insert(restore_at, task)
            raise
        return True

    def _next_eligible_index(self) -> int | None:
        running_keys = {t.key for t in self._running}
        for index, task in enumerate(self._pending):
            if task.key not in running_keys:
                return index
        return None

    def _on_complete(self, task: Task) -> None:
        with self._lock:
            self._completions.append(task)
            if self._draining:
                return
            self._draining = True
            error: Exception | None = None
            try:
                while self._completions:
                    done = self._completions.popleft()
                    try:
                        self._finish(done)
                    except Exception as exc:
                        if error is not None:
                            logger.exception("Error finishing task %s", done.key)
                        else:
                            error = exc
            finally:
                self._draining = False
            if error is not None:
                raise error

    def _finish(self, task: Task) -> None:
        logger.info(
            "Task %s finished in %sms",
            task.key,
            task.duration,
            extra={"task_key": task.key, "task_id": task.id},
        )
        try:
            self._running.remove(task)
        except ValueError:
            raise SchedulerInvariantError(
                f"Completed task {task.key!r} ({task.id}) is not running"
            ) from None
        self._completed += 1
        self._emit(EventType.TASK_COMPLETED, task)
        self.promote()

    def _check_invariants(self) -> None:
        if len(self._running) > self._config.max_concurrency:
            raise SchedulerInvariantError(
                f"{len(self._running)} tasks running, limit is {self._config.max_concurrency}"
            )
        duplicates = [k for k, n in Counter(t.key for t in self._running).items() if n > 1]
        if duplicates:
            raise SchedulerInvariantError(f"Keys running concurrently: {duplicates}")
        running_ids = {t.id for t in self._running}
        if any(t.id in running_ids for t in self._pending):
            raise SchedulerInvariantError("Task present in both pending and running")

    def _emit(self, event_type: EventType, task: Task, **extra: Any) -> None:
        if self._event_bus is None:
            return
        payload: dict[str, Any] = {"key": task.key, "duration": task.duration, "task_id": task.id}
        payload.update(extra)
        self._event_bus.publish_nowait(Event(event_type, payload))
