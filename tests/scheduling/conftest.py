"""Pytest fixtures for scheduling tests."""

from datetime import timedelta

import pytest

from tickgate.core.events.memory import InMemoryEventBus
from tickgate.core.scheduling import (
    InMemoryLastRunStore,
    InMemoryLockProvider,
    InMemoryTaskQueue,
    ScheduleRunner,
    TaskDescriptor,
    TaskSchedule,
)


@pytest.fixture
def store():
    """Empty in-memory last-run store."""
    return InMemoryLastRunStore()


@pytest.fixture
def queue():
    """Empty in-memory task queue."""
    return InMemoryTaskQueue()


@pytest.fixture
def lock_table():
    """Lock table shared by every provider in one test, like one Redis."""
    return {}


@pytest.fixture
def locks(lock_table):
    """Lock provider for worker-1."""
    return InMemoryLockProvider(instance_id="worker-1", table=lock_table)


@pytest.fixture
def event_bus():
    return InMemoryEventBus()


@pytest.fixture
def runner(store, queue, event_bus, clock):
    """Runner over in-memory backends, driven by the fake clock."""
    return ScheduleRunner(store, queue, events=event_bus, clock=clock)


@pytest.fixture
def task():
    return TaskDescriptor("reports.nightly", args=("eu",), kwargs={"dry_run": False})


@pytest.fixture
def interval_schedule(task, clock):
    """Recurring 5-second interval schedule created at T0."""
    return TaskSchedule.every(task, timedelta(seconds=5), task_key="digest", clock=clock)
