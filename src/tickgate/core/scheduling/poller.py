"""Schedule poller - the per-worker loop around the runner.

Manifesto:
    Every worker process runs one poller over the same set of schedules.
    Each tick the poller takes the schedule's lock, lets the runner decide,
    and retires one-shot schedules once any worker reports them handled.
    No coordinator process is needed: the shared store and locks do the
    coordination.

Tags:
    tickgate, scheduling, poller, beat-as-poller, worker

┌──────────────────────────────────────────────────────────────────────────────┐
│  tick()                                                                       │
│                                                                               │
│   for schedule in active schedules:                                           │
│      ├── lock = locks.acquire(schedule.lock_key)   None → skipped_locked      │
│      ├── handled = runner.run_if_due(schedule, lock)                          │
│      │      BackendIOError → logged, failed += 1, next schedule               │
│      ├── handled and one-shot → retire from active set                        │
│      └── locks.release(lock)                                                  │
│                                                                               │
│  run(stop_event)                                                              │
│      while not stopped: tick(); wait interval_seconds                         │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tickgate.core.errors import BackendIOError
from tickgate.core.logging import LogContext, get_logger
from tickgate.core.timestamps import utc_now

from .locks import LockProvider
from .policy import TaskSchedule
from .runner import ScheduleRunner

logger = get_logger(__name__)


@dataclass
class PollerStats:
    """Counters for one poller."""

    tick_count: int = 0
    fired: int = 0
    skipped_locked: int = 0
    retired: int = 0
    failed: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "fired": self.fired,
            "skipped_locked": self.skipped_locked,
            "retired": self.retired,
            "failed": self.failed,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class TickResult:
    """What happened to each schedule during one tick."""

    fired: list[str] = field(default_factory=list)
    not_due: list[str] = field(default_factory=list)
    skipped_locked: list[str] = field(default_factory=list)
    retired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class SchedulePoller:
    """Polls a set of schedules through a runner under per-schedule locks.

    Example:
        >>> poller = SchedulePoller(runner, locks, interval_seconds=1.0)
        >>> await poller.add_schedule(nightly, clear_previous=True)
        >>> stop = asyncio.Event()
        >>> await poller.run(stop)
    """

    def __init__(
        self,
        runner: ScheduleRunner,
        locks: LockProvider,
        *,
        interval_seconds: float = 1.0,
        lock_ttl_seconds: int = 300,
    ) -> None:
        self.runner = runner
        self.locks = locks
        self.interval = interval_seconds
        self.lock_ttl_seconds = lock_ttl_seconds

        self._schedules: dict[str, TaskSchedule] = {}
        self._stats = PollerStats()
        self._running = False

    # === Active schedule set ===

    def add(self, schedule: TaskSchedule) -> None:
        """Add or replace a schedule in the active set."""
        if schedule.task_key in self._schedules:
            logger.info("schedule_replaced", task_key=schedule.task_key)
        self._schedules[schedule.task_key] = schedule

    async def add_schedule(self, schedule: TaskSchedule, *, clear_previous: bool = False) -> None:
        """Add a schedule, optionally clearing the last run of a previous
        definition that shared its key."""
        if clear_previous:
            await self.runner.clear_last_run_time(schedule)
        self.add(schedule)

    def remove(self, task_key: str) -> bool:
        return self._schedules.pop(task_key, None) is not None

    @property
    def schedules(self) -> list[TaskSchedule]:
        return list(self._schedules.values())

    # === Tick Processing ===

    async def tick(self) -> TickResult:
        """Evaluate every active schedule once."""
        self._stats.tick_count += 1
        self._stats.last_tick = utc_now()
        result = TickResult()

        for schedule in list(self._schedules.values()):
            async with LogContext(task_key=schedule.task_key):
                await self._process_schedule(schedule, result)

        return result

    async def _process_schedule(self, schedule: TaskSchedule, result: TickResult) -> None:
        lock = await self.locks.acquire(schedule.lock_key, self.lock_ttl_seconds)
        if lock is None:
            self._stats.skipped_locked += 1
            result.skipped_locked.append(schedule.task_key)
            return

        try:
            already_ran = (
                not schedule.is_recurring
                and await self.runner.get_last_run_time(schedule) is not None
            )
            handled = await self.runner.run_if_due(schedule, lock)
        except BackendIOError as e:
            self._stats.failed += 1
            self._stats.last_error = str(e)
            result.failed.append(schedule.task_key)
            logger.exception("schedule_backend_error", error=e.to_dict())
            return
        finally:
            await self.locks.release(lock)

        if not handled:
            result.not_due.append(schedule.task_key)
            return

        if not already_ran:
            self._stats.fired += 1
            result.fired.append(schedule.task_key)

        if not schedule.is_recurring:
            self._schedules.pop(schedule.task_key, None)
            self._stats.retired += 1
            result.retired.append(schedule.task_key)
            logger.info("schedule_retired", task_key=schedule.task_key)

    # === Lifecycle ===

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``interval_seconds`` until ``stop_event`` is set."""
        if self._running:
            logger.warning("poller_already_running")
            return

        self._running = True
        logger.info("poller_started", interval_seconds=self.interval, schedules=len(self._schedules))
        try:
            while not stop_event.is_set():
                await self.tick()
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("poller_stopped", tick_count=self._stats.tick_count)

    @property
    def is_running(self) -> bool:
        return self._running

    # === Stats ===

    def get_stats(self) -> PollerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = PollerStats()


__all__ = ["PollerStats", "SchedulePoller", "TickResult"]
