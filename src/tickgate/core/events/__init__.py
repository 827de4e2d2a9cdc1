"""Observability events emitted by the scheduling core.

The schedule runner reports each fired schedule as an :class:`Event`
published to an injected :class:`EventBus`, so a host can forward it to
metrics, audit logs, or tests without the runner printing anything itself.

Usage::

    from tickgate.core.events import Event
    from tickgate.core.events.memory import InMemoryEventBus

    bus = InMemoryEventBus()

    async def on_fired(event: Event):
        print(event.payload["task_key"], event.payload["policy"])

    await bus.subscribe("schedule.*", on_fired)
    runner = ScheduleRunner(store, queue, events=bus)

Modules
-------
memory      InMemoryEventBus -- in-process delivery, single node
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from tickgate.core.timestamps import utc_now

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "SCHEDULE_FIRED",
]

SCHEDULE_FIRED = "schedule.fired"


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass
class Event:
    """Event payload published to the observability sink.

    Attributes:
        event_type: Dot-separated type (e.g., ``schedule.fired``)
        source: Origin component
        payload: Event-specific data
        timestamp: When the event occurred (UTC)
        correlation_id: Optional ID linking related events
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)
    correlation_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern (supports wildcards).

        Examples:
            - ``schedule.*`` matches ``schedule.fired``
            - ``*`` matches everything
            - ``schedule.fired`` matches exactly ``schedule.fired``
        """
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return self.event_type.startswith(prefix + ".")
        return self.event_type == pattern

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "source": self.source,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
        }


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[Event], Awaitable[None]]


# ── EventBus Protocol ────────────────────────────────────────────────────


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event sinks.

    Supports publish/subscribe with wildcard patterns. Implementations
    must be async-compatible.
    """

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        ...

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
    ) -> str:
        """Subscribe to events matching a pattern.

        Returns:
            Subscription ID for later unsubscription
        """
        ...

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        ...

    async def close(self) -> None:
        """Clean up resources."""
        ...
