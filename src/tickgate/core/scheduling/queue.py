"""Task queue capability consumed by the schedule runner.

The runner only ever calls ``enqueue``; what happens to the task afterwards
(dequeue, execution, retries) belongs to the queue and its workers.

Implementations:
    - InMemoryTaskQueue: FIFO list, single process and tests
    - RedisTaskQueue: ``LPUSH`` of the task JSON onto a shared list
    - CeleryTaskQueue: ``send_task`` on a Celery app (requires ``tickgate[celery]``)
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from redis.exceptions import RedisError

from tickgate.core.errors import BackendIOError
from tickgate.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TaskDescriptor:
    """Opaque unit of work handed to the queue when a schedule fires.

    ``name`` identifies the handler on the consuming side; ``args`` and
    ``kwargs`` must be JSON-serializable for the Redis and Celery queues.
    """

    name: str
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "args": list(self.args), "kwargs": dict(self.kwargs)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskDescriptor:
        return cls(
            name=data["name"],
            args=tuple(data.get("args") or ()),
            kwargs=dict(data.get("kwargs") or {}),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | bytes) -> TaskDescriptor:
        return cls.from_dict(json.loads(raw))


@runtime_checkable
class TaskQueue(Protocol):
    """Protocol for task queues.

    ``enqueue`` failures propagate to the runner's caller unchanged.
    """

    async def enqueue(self, task: TaskDescriptor) -> None:
        """Submit ``task`` for execution."""
        ...


class InMemoryTaskQueue:
    """FIFO queue held in process memory.

    Example:
        >>> queue = InMemoryTaskQueue()
        >>> await queue.enqueue(TaskDescriptor("send_digest"))
        >>> queue.dequeue()
        TaskDescriptor(name='send_digest', args=(), kwargs={})
    """

    def __init__(self) -> None:
        self._tasks: deque[TaskDescriptor] = deque()
        self.enqueued_count = 0

    async def enqueue(self, task: TaskDescriptor) -> None:
        self._tasks.append(task)
        self.enqueued_count += 1

    def dequeue(self) -> TaskDescriptor | None:
        """Pop the oldest task, or None if empty."""
        return self._tasks.popleft() if self._tasks else None

    @property
    def pending(self) -> list[TaskDescriptor]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)


class RedisTaskQueue:
    """Redis list used as a shared FIFO queue.

    Producers ``LPUSH`` and consumers ``RPOP``, so tasks come out in the
    order they were enqueued.

    Example:
        client = redis.asyncio.from_url("redis://localhost:6379/0", decode_responses=True)
        queue = RedisTaskQueue(client, queue_key="tickgate:tasks")
    """

    def __init__(self, client: Any, *, queue_key: str = "tickgate:tasks") -> None:
        """Initialize Redis queue.

        Args:
            client: ``redis.asyncio.Redis`` client
            queue_key: Redis list holding pending task descriptors
        """
        self._client = client
        self.queue_key = queue_key

    async def enqueue(self, task: TaskDescriptor) -> None:
        try:
            await self._client.lpush(self.queue_key, task.to_json())
        except RedisError as e:
            raise BackendIOError(f"Enqueue of {task.name!r} failed", cause=e).with_context(
                key=self.queue_key, operation="enqueue", backend="redis"
            ) from e

    async def dequeue(self) -> TaskDescriptor | None:
        """Pop the oldest task, or None if the list is empty."""
        try:
            raw = await self._client.rpop(self.queue_key)
        except RedisError as e:
            raise BackendIOError("Dequeue failed", cause=e).with_context(
                key=self.queue_key, operation="dequeue", backend="redis"
            ) from e
        if raw is None:
            return None
        return TaskDescriptor.from_json(raw)

    async def length(self) -> int:
        return await self._client.llen(self.queue_key)


class CeleryTaskQueue:
    """Hands scheduled tasks to Celery workers via ``send_task``.

    ``send_task`` is blocking (it talks to the broker), so it runs in a worker
    thread to keep the poll loop responsive.

    Example:
        app = Celery("billing", broker="redis://localhost:6379/0")
        queue = CeleryTaskQueue(app, queue="scheduled")
    """

    def __init__(self, celery_app: Any, *, queue: str | None = None) -> None:
        self.celery_app = celery_app
        self.queue = queue

    async def enqueue(self, task: TaskDescriptor) -> None:
        options: dict[str, Any] = {}
        if self.queue:
            options["queue"] = self.queue
        try:
            result = await asyncio.to_thread(
                self.celery_app.send_task,
                task.name,
                args=list(task.args),
                kwargs=dict(task.kwargs),
                **options,
            )
        except Exception as e:
            raise BackendIOError(f"Celery send_task of {task.name!r} failed", cause=e).with_context(
                operation="enqueue", backend="celery"
            ) from e
        logger.debug("celery_task_sent", task_name=task.name, celery_task_id=getattr(result, "id", None))


__all__ = [
    "CeleryTaskQueue",
    "InMemoryTaskQueue",
    "RedisTaskQueue",
    "TaskDescriptor",
    "TaskQueue",
]
