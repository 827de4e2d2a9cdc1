"""Schedule runner - read last run, decide, record, enqueue.

Manifesto:
    Many workers poll the same schedules. Each of them calls
    ``run_if_due`` under the schedule's lock; the shared last-run record
    turns their independent polls into one logical scheduler. The runner
    holds no state of its own and never retries: every backend failure goes
    straight back to the poll host.

Tags:
    tickgate, scheduling, runner, at-most-once, last-run

┌──────────────────────────────────────────────────────────────────────────────┐
│  run_if_due(schedule, lock)        caller holds lock on schedule.lock_key    │
│                                                                               │
│   1. last_run = store.get(last_run_key)              absent → None           │
│   2. last_run and not recurring  ──────────────────► True  (already handled) │
│   3. now = clock()                                                            │
│      is_due(now, last_run or start_time, policy)                              │
│   4. due:  store.set(last_run_key, now)   ◄── before enqueue                 │
│            log + publish "schedule.fired"                                     │
│            queue.enqueue(task)  ─────────────────────► True                   │
│   5. not due  ──────────────────────────────────────► False                   │
│                                                                               │
│  Writing before enqueueing means a crash between the two loses at most one   │
│  enqueue instead of re-enqueueing forever.                                    │
└──────────────────────────────────────────────────────────────────────────────┘

A True result for a one-shot schedule that already ran is a completion
signal: the host keeping the active-schedule set should retire it.
"""

from __future__ import annotations

from datetime import datetime

from tickgate.core.errors import ScheduleError
from tickgate.core.events import SCHEDULE_FIRED, Event, EventBus
from tickgate.core.logging import get_logger
from tickgate.core.timestamps import ensure_utc, to_iso8601, utc_now

from .evaluator import is_due
from .locks import ScheduleLock
from .policy import Clock, TaskSchedule
from .queue import TaskQueue
from .store import LastRunStore, decode_last_run, encode_last_run

logger = get_logger(__name__)

EVENT_SOURCE = "tickgate.scheduling.runner"


class ScheduleRunner:
    """Runs schedules against a shared last-run store and task queue.

    Example:
        >>> runner = ScheduleRunner(store, queue, events=bus)
        >>> lock = await locks.acquire(schedule.lock_key)
        >>> if lock is not None:
        ...     try:
        ...         handled = await runner.run_if_due(schedule, lock)
        ...     finally:
        ...         await locks.release(lock)
    """

    def __init__(
        self,
        store: LastRunStore,
        queue: TaskQueue,
        *,
        events: EventBus | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize runner.

        Args:
            store: Shared last-run store
            queue: Queue receiving the task of each fired schedule
            events: Observability sink for ``schedule.fired`` events (optional)
            clock: Source of the current UTC time
        """
        self.store = store
        self.queue = queue
        self.events = events
        self._clock = clock

    async def run_if_due(self, schedule: TaskSchedule, lock: ScheduleLock) -> bool:
        """Enqueue the schedule's task if its policy says it is due.

        Not safe to call concurrently for the same schedule; ``lock`` must be
        held on ``schedule.lock_key`` for the whole call.

        Returns:
            True if the task was enqueued by this call, or if a one-shot
            schedule has already run. False if not yet due.

        Raises:
            ScheduleError: If ``lock`` is not a lock on ``schedule.lock_key``.
            BackendIOError: Propagated unchanged from the store or queue.
        """
        if lock.key != schedule.lock_key:
            raise ScheduleError(
                f"run_if_due for {schedule.task_key!r} requires a lock on "
                f"{schedule.lock_key!r}, got {lock.key!r}"
            ).with_context(task_key=schedule.task_key)

        last_run = await self.get_last_run_time(schedule)

        if last_run is not None and not schedule.is_recurring:
            logger.debug("schedule_already_completed", task_key=schedule.task_key)
            return True

        now = ensure_utc(self._clock())
        if not is_due(now, last_run or schedule.start_time, schedule.policy):
            logger.debug("schedule_not_due", task_key=schedule.task_key)
            return False

        await self.store.set_string(schedule.last_run_key, encode_last_run(now))
        await self._report_fired(schedule, last_run, now)
        await self.queue.enqueue(schedule.task)
        return True

    async def get_last_run_time(self, schedule: TaskSchedule) -> datetime | None:
        """Read the schedule's last-run record; None if it never ran."""
        raw = await self.store.get_string(schedule.last_run_key)
        return decode_last_run(raw)

    async def clear_last_run_time(self, schedule: TaskSchedule) -> None:
        """Delete the schedule's last-run record.

        Use when a schedule sharing this key is redefined, so the previous
        definition's record cannot suppress the new one's first run.
        Idempotent.
        """
        await self.store.delete_key(schedule.last_run_key)
        logger.info("schedule_last_run_cleared", task_key=schedule.task_key)

    async def _report_fired(
        self,
        schedule: TaskSchedule,
        last_run: datetime | None,
        fired_at: datetime,
    ) -> None:
        logger.info(
            "schedule_fired",
            task_key=schedule.task_key,
            policy=schedule.describe(),
            task_name=schedule.task.name,
        )
        if self.events is None:
            return
        await self.events.publish(
            Event(
                event_type=SCHEDULE_FIRED,
                source=EVENT_SOURCE,
                payload={
                    "task_key": schedule.task_key,
                    "policy": schedule.describe(),
                    "task_name": schedule.task.name,
                    "recurring": schedule.is_recurring,
                    "last_run": to_iso8601(last_run),
                    "fired_at": to_iso8601(fired_at),
                },
                timestamp=fired_at,
            )
        )


__all__ = ["ScheduleRunner"]
