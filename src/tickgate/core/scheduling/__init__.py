"""Scheduling package for tickgate.

Manifesto:
    A scheduled task shared by many worker processes should fire once per
    due occurrence, not once per worker. Instead of electing a coordinator,
    every worker polls the same schedules, takes the schedule's lock, and
    consults a shared last-run record before enqueueing.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TICKGATE SCHEDULING                                                          │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from tickgate.core.scheduling import (                             │   │
│  │       TaskDescriptor, TaskSchedule, create_poller,                   │   │
│  │   )                                                                  │   │
│  │                                                                      │   │
│  │   poller = create_poller(load_settings())                            │   │
│  │   poller.add(TaskSchedule.cron(                                      │   │
│  │       TaskDescriptor("reports.nightly"),                             │   │
│  │       "0 0 2 * * *",                                                 │   │
│  │       task_key="nightly-report",                                     │   │
│  │   ))                                                                 │   │
│  │   await poller.run(stop_event)                                       │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Components:                                                                  │
│   policy.py     Interval | AbsoluteInstant | Crontab, TaskSchedule           │
│   evaluator.py  is_due(now, last_run, policy)                                │
│   runner.py     ScheduleRunner.run_if_due / clear_last_run_time              │
│   store.py      LastRunStore (in-memory, Redis)                              │
│   queue.py      TaskQueue (in-memory, Redis, Celery)                         │
│   locks.py      LockProvider (in-memory, Redis)                              │
│   poller.py     SchedulePoller (per-worker tick loop)                        │
│                                                                               │
│  Dependencies:                                                                │
│  - croniter: seconds-first cron expressions                                  │
│  - redis: shared store, queue and locks                                      │
│  - celery: CeleryTaskQueue target app (optional)                             │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Calling ``run_if_due`` without holding the schedule's lock
    ✅ ``lock = await locks.acquire(schedule.lock_key)`` and pass it in
    ❌ Re-registering a redefined schedule under an old key as-is
    ✅ ``await poller.add_schedule(schedule, clear_previous=True)``
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis

from tickgate.core.events import EventBus
from tickgate.core.logging import configure_logging
from tickgate.core.settings import TickgateSettings

from .evaluator import is_due
from .locks import InMemoryLockProvider, LockProvider, RedisLockProvider, ScheduleLock
from .poller import PollerStats, SchedulePoller, TickResult
from .policy import AbsoluteInstant, Crontab, Interval, SchedulePolicy, TaskSchedule
from .queue import CeleryTaskQueue, InMemoryTaskQueue, RedisTaskQueue, TaskDescriptor, TaskQueue
from .runner import ScheduleRunner
from .store import (
    InMemoryLastRunStore,
    LastRunStore,
    RedisLastRunStore,
    decode_last_run,
    encode_last_run,
)

__all__ = [
    # Policy
    "AbsoluteInstant",
    "Crontab",
    "Interval",
    "SchedulePolicy",
    "TaskSchedule",
    # Evaluator
    "is_due",
    # Runner
    "ScheduleRunner",
    # Store
    "LastRunStore",
    "InMemoryLastRunStore",
    "RedisLastRunStore",
    "decode_last_run",
    "encode_last_run",
    # Queue
    "TaskDescriptor",
    "TaskQueue",
    "InMemoryTaskQueue",
    "RedisTaskQueue",
    "CeleryTaskQueue",
    # Locks
    "LockProvider",
    "ScheduleLock",
    "InMemoryLockProvider",
    "RedisLockProvider",
    # Poller
    "PollerStats",
    "SchedulePoller",
    "TickResult",
    # Factories
    "create_runner",
    "create_poller",
]


def create_runner(
    settings: TickgateSettings,
    *,
    redis_client: Any = None,
    events: EventBus | None = None,
) -> ScheduleRunner:
    """Build a Redis-backed runner from settings.

    Args:
        settings: Worker settings (``redis_url``, ``queue_key``)
        redis_client: Existing ``redis.asyncio`` client to reuse (optional)
        events: Observability sink (optional)
    """
    client = redis_client or aioredis.from_url(settings.redis_url, decode_responses=True)
    return ScheduleRunner(
        store=RedisLastRunStore(client),
        queue=RedisTaskQueue(client, queue_key=settings.queue_key),
        events=events,
    )


def create_poller(
    settings: TickgateSettings,
    *,
    redis_client: Any = None,
    events: EventBus | None = None,
    instance_id: str | None = None,
) -> SchedulePoller:
    """Build a complete Redis-backed poller from settings.

    This is the recommended way to wire a worker: runner, store, queue and
    locks all share one Redis client, and structlog is configured from the
    settings' ``log_level``, ``log_json`` and ``service_name``.

    Example:
        >>> poller = create_poller(load_settings(), instance_id="worker-1")
    """
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service=settings.service_name,
    )
    client = redis_client or aioredis.from_url(settings.redis_url, decode_responses=True)
    runner = create_runner(settings, redis_client=client, events=events)
    return SchedulePoller(
        runner,
        RedisLockProvider(client, instance_id=instance_id),
        interval_seconds=settings.poll_interval_seconds,
        lock_ttl_seconds=settings.lock_ttl_seconds,
    )
