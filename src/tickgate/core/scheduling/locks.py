"""Schedule locks held by the caller around ``ScheduleRunner.run_if_due``.

Manifesto:
    The runner's read → evaluate → write → enqueue sequence is only
    at-most-once when a single worker runs it for a given schedule at a time.
    The runner does not lock; it requires proof that the caller does, in the
    form of a :class:`ScheduleLock` for ``schedule.lock_key``.

Tags:
    tickgate, scheduling, distributed-locks, TTL, redis

    Lock flow::

        lock = await locks.acquire(schedule.lock_key, ttl_seconds=300)
        if lock is None:
            ...                     # another worker holds it, skip this tick
        try:
            await runner.run_if_due(schedule, lock)
        finally:
            await locks.release(lock)

    TTL: locks auto-expire after ttl_seconds so a crashed worker cannot
    block a schedule forever.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

from redis.exceptions import LockError, RedisError

from tickgate.core.errors import BackendIOError
from tickgate.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScheduleLock:
    """A lock currently held by ``holder`` on ``key``.

    ``handle`` is the backend object needed to release it.
    """

    key: str
    holder: str
    handle: Any = field(default=None, compare=False, repr=False)


@runtime_checkable
class LockProvider(Protocol):
    """Scoped-acquisition capability for schedule locks."""

    async def acquire(self, key: str, ttl_seconds: int = 300) -> ScheduleLock | None:
        """Try to take the lock without blocking.

        Returns:
            The held lock, or None if another holder has it.
        """
        ...

    async def release(self, lock: ScheduleLock) -> bool:
        """Release a held lock. Returns False if it was no longer held."""
        ...


class InMemoryLockProvider:
    """Process-local locks with TTL expiry.

    Providers constructed with the same ``table`` behave like separate
    workers sharing one lock backend.

    Example:
        >>> table: dict = {}
        >>> worker_a = InMemoryLockProvider(instance_id="a", table=table)
        >>> worker_b = InMemoryLockProvider(instance_id="b", table=table)
    """

    def __init__(
        self,
        *,
        instance_id: str | None = None,
        table: dict[str, tuple[str, float]] | None = None,
    ) -> None:
        self.instance_id = instance_id or str(uuid4())
        self._table = table if table is not None else {}

    async def acquire(self, key: str, ttl_seconds: int = 300) -> ScheduleLock | None:
        now = time.monotonic()
        current = self._table.get(key)
        if current is not None:
            holder, expires_at = current
            if expires_at > now and holder != self.instance_id:
                logger.debug("lock_held_elsewhere", lock_key=key, holder=holder)
                return None
        self._table[key] = (self.instance_id, now + ttl_seconds)
        return ScheduleLock(key=key, holder=self.instance_id)

    async def release(self, lock: ScheduleLock) -> bool:
        current = self._table.get(lock.key)
        if current is None or current[0] != lock.holder:
            return False
        del self._table[lock.key]
        return True

    def is_locked(self, key: str) -> bool:
        current = self._table.get(key)
        return current is not None and current[1] > time.monotonic()


class RedisLockProvider:
    """Distributed schedule locks using redis-py's ``Lock``.

    Acquisition is non-blocking: a worker that loses the race skips the
    schedule for this tick instead of waiting.

    Example:
        client = redis.asyncio.from_url("redis://localhost:6379/0", decode_responses=True)
        locks = RedisLockProvider(client, instance_id="worker-1")
    """

    def __init__(self, client: Any, *, instance_id: str | None = None) -> None:
        self._client = client
        self.instance_id = instance_id or str(uuid4())

    async def acquire(self, key: str, ttl_seconds: int = 300) -> ScheduleLock | None:
        redis_lock = self._client.lock(key, timeout=ttl_seconds, blocking=False)
        try:
            acquired = await redis_lock.acquire(blocking=False)
        except RedisError as e:
            raise BackendIOError(f"Lock acquire failed for {key}", cause=e).with_context(
                key=key, operation="lock", backend="redis"
            ) from e
        if not acquired:
            logger.debug("lock_held_elsewhere", lock_key=key)
            return None
        return ScheduleLock(key=key, holder=self.instance_id, handle=redis_lock)

    async def release(self, lock: ScheduleLock) -> bool:
        try:
            await lock.handle.release()
        except LockError:
            # Expired (TTL) or taken over by another worker
            logger.warning("lock_release_not_owned", lock_key=lock.key)
            return False
        except RedisError as e:
            logger.warning("lock_release_failed", lock_key=lock.key, error=str(e))
            return False
        return True


__all__ = [
    "InMemoryLockProvider",
    "LockProvider",
    "RedisLockProvider",
    "ScheduleLock",
]
