"""Due-ness decision for a schedule policy.

``is_due`` is a pure function: no I/O, no clock reads, no hidden state. The
same ``(now, last_run, policy)`` always yields the same answer. Both instants
must be timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Never

from tickgate.core.errors import InternalInvariantViolation

from .policy import AbsoluteInstant, Crontab, Interval, SchedulePolicy


def is_due(now: datetime, last_run: datetime, policy: SchedulePolicy) -> bool:
    """Return True if ``policy`` says the task must be enqueued at ``now``.

    Boundaries are inclusive. Crontab occurrences are anchored on
    ``last_run``, never on ``now``, so repeated runs do not drift.

    Raises:
        InternalInvariantViolation: If ``policy`` is not a known variant.
    """
    match policy:
        case Interval(every=every):
            return now - last_run >= every
        case AbsoluteInstant(at=at):
            return now >= at
        case Crontab():
            return now >= policy.next_occurrence_after(last_run)
        case _:
            _unreachable(policy)


def _unreachable(policy: Never) -> Never:
    raise InternalInvariantViolation(
        f"Invalid scheduling policy {policy!r}; schedules must be built with "
        "TaskSchedule.every/at/cron"
    )


__all__ = ["is_due"]
