"""Example: feeding a batch of keyed tasks through the scheduler.

Submits more tasks than the concurrency limit allows, including a key
that appears twice, and prints the queue as slots free up.
"""

import asyncio
import logging

from taskgate.core.events import Event, EventBus
from taskgate.core.models import Task
from taskgate.core.scheduler import Scheduler, SchedulerConfig

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(message)s")
log = logging.getLogger(__name__)


async def on_event(event: Event) -> None:
    log.info("Event: %s — %s", event.event_type.value, event.payload)


def show(scheduler: Scheduler) -> None:
    snap = scheduler.snapshot()
    print(f"  running={[t.key for t in snap.running]}  pending={[t.key for t in snap.pending]}")


async def main() -> None:
    bus = EventBus()
    bus.subscribe_all(on_event)

    scheduler = Scheduler(SchedulerConfig(max_concurrency=2), event_bus=bus)
    scheduler.append(
        [
            Task("backup", 300),
            Task("report", 100),
            Task("backup", 100),
            Task("cleanup", 150),
        ]
    )

    while scheduler.running_count or scheduler.pending_count:
        show(scheduler)
        await asyncio.sleep(0.1)

    await bus.drain()
    print(f"\nCompleted {scheduler.completed_count} tasks")


if __name__ == "__main__":
    asyncio.run(main())
