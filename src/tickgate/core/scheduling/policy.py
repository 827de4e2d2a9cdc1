"""Schedule policies and schedule identity.

A :class:`TaskSchedule` pairs one time policy with the shared key every
worker uses to find the schedule's last-run record and lock.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE POLICY (closed union, exactly one per schedule)                     │
│                                                                               │
│   Interval(every)          due when now - last_run >= every                   │
│   AbsoluteInstant(at)      due when now >= at (last_run ignored)              │
│   Crontab(expression)      due when now >= next occurrence after last_run     │
│                                                                               │
│  SCHEDULE IDENTITY                                                            │
│                                                                               │
│   task_key ──► "<namespace>::<task_key>::LastRunValue"   (last-run record)    │
│            └─► "<namespace>::<task_key>::ScheduleLock"   (caller's lock)      │
│                                                                               │
│   start_time: UTC instant captured at construction, used as the evaluation    │
│   anchor until the first last-run record exists.                              │
└──────────────────────────────────────────────────────────────────────────────┘

Crontab expressions have six fields with seconds first
(``"sec min hour day-of-month month day-of-week"``) and are checked when the
policy is built, so a schedule can never hold an expression that fails later.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from croniter import croniter

from tickgate.core.errors import InvalidScheduleSyntax
from tickgate.core.settings import DEFAULT_NAMESPACE
from tickgate.core.timestamps import ensure_utc, utc_now

from .queue import TaskDescriptor

Clock = Callable[[], datetime]

CRONTAB_FIELD_COUNT = 6


@dataclass(frozen=True)
class Interval:
    """Fire every ``every`` after the last run."""

    every: timedelta

    def describe(self) -> str:
        return f"every {self.every}"


@dataclass(frozen=True)
class AbsoluteInstant:
    """Fire once at or after a fixed instant.

    Aware instants are converted to UTC; naive instants are read as UTC.
    """

    at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "at", ensure_utc(self.at))

    def describe(self) -> str:
        return f"at {self.at.isoformat()}"


@dataclass(frozen=True)
class Crontab:
    """Fire at each occurrence of a seconds-first cron expression.

    Raises:
        InvalidScheduleSyntax: If the expression does not parse or has no
            next occurrence from the current time.
    """

    expression: str

    def __post_init__(self) -> None:
        self.next_occurrence_after(utc_now())

    def next_occurrence_after(self, instant: datetime) -> datetime:
        """First occurrence strictly after ``instant``, in UTC."""
        field_count = len(self.expression.split())
        if field_count != CRONTAB_FIELD_COUNT:
            raise InvalidScheduleSyntax(
                self.expression,
                ValueError(
                    f"expected {CRONTAB_FIELD_COUNT} fields (seconds first), got {field_count}"
                ),
            )
        try:
            it = croniter(
                self.expression, ensure_utc(instant), second_at_beginning=True, day_or=False
            )
            return ensure_utc(it.get_next(datetime))
        except ValueError as e:  # croniter errors subclass ValueError
            raise InvalidScheduleSyntax(self.expression, e) from e

    def describe(self) -> str:
        return f"cron {self.expression}"


SchedulePolicy = Interval | AbsoluteInstant | Crontab


@dataclass(frozen=True)
class TaskSchedule:
    """One logical schedule shared by every worker that polls it.

    Build instances with :meth:`every`, :meth:`at` or :meth:`cron`; each sets
    exactly one policy and captures ``start_time`` from the clock.
    """

    task_key: str
    policy: SchedulePolicy
    task: TaskDescriptor
    is_recurring: bool
    start_time: datetime
    namespace: str = DEFAULT_NAMESPACE

    @property
    def last_run_key(self) -> str:
        return f"{self.namespace}::{self.task_key}::LastRunValue"

    @property
    def lock_key(self) -> str:
        """Key the caller must hold a lock on while calling the runner."""
        return f"{self.namespace}::{self.task_key}::ScheduleLock"

    # === Constructors ===

    @classmethod
    def every(
        cls,
        task: TaskDescriptor,
        interval: timedelta,
        *,
        task_key: str,
        is_recurring: bool = True,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Clock = utc_now,
    ) -> TaskSchedule:
        """Schedule ``task`` every ``interval``.

        With ``is_recurring=False`` the task runs once, ``interval`` after the
        schedule was created.
        """
        return cls(
            task_key=task_key,
            policy=Interval(interval),
            task=task,
            is_recurring=is_recurring,
            start_time=ensure_utc(clock()),
            namespace=namespace,
        )

    @classmethod
    def at(
        cls,
        task: TaskDescriptor,
        when: datetime,
        *,
        task_key: str,
        is_recurring: bool = False,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Clock = utc_now,
    ) -> TaskSchedule:
        """Schedule ``task`` for a fixed instant (aware, or naive UTC)."""
        return cls(
            task_key=task_key,
            policy=AbsoluteInstant(when),
            task=task,
            is_recurring=is_recurring,
            start_time=ensure_utc(clock()),
            namespace=namespace,
        )

    @classmethod
    def cron(
        cls,
        task: TaskDescriptor,
        expression: str,
        *,
        task_key: str,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Clock = utc_now,
    ) -> TaskSchedule:
        """Schedule ``task`` on a seconds-first cron expression. Always recurring.

        Raises:
            InvalidScheduleSyntax: If the expression is invalid.
        """
        return cls(
            task_key=task_key,
            policy=Crontab(expression),
            task=task,
            is_recurring=True,
            start_time=ensure_utc(clock()),
            namespace=namespace,
        )

    def describe(self) -> str:
        return self.policy.describe()


__all__ = [
    "AbsoluteInstant",
    "Clock",
    "Crontab",
    "Interval",
    "SchedulePolicy",
    "TaskSchedule",
]
