"""Last-run store - the shared record every worker reads before firing.

Manifesto:
    Workers coordinate through one value per schedule: the UTC instant of the
    most recent due-run. The store only needs single-key get/set/delete, so
    any key-value backend shared by the workers will do.

Tags:
    tickgate, scheduling, last-run, key-value, redis

┌──────────────────────────────────────────────────────────────────────────────┐
│  LAST-RUN STORE                                                               │
│                                                                               │
│   get_string(key) → str | None      absent (or empty) = never run             │
│   set_string(key, value)            upsert                                    │
│   delete_key(key)                   idempotent                                │
│                                                                               │
│   Key:   "<namespace>::<task_key>::LastRunValue"                              │
│   Value: JSON string of the ISO-8601 UTC instant, microsecond precision       │
│          e.g.  "2026-01-05T12:00:05.250000+00:00"                             │
│                                                                               │
│  Implementations:                                                             │
│   - InMemoryLastRunStore   single process, tests                              │
│   - RedisLastRunStore      redis.asyncio, shared by all workers               │
└──────────────────────────────────────────────────────────────────────────────┘

None of these methods are safe to combine into read-then-write sequences
without the caller's schedule lock.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from redis.exceptions import RedisError

from tickgate.core.errors import BackendIOError
from tickgate.core.timestamps import ensure_utc, from_iso8601


@runtime_checkable
class LastRunStore(Protocol):
    """Key-value capability consumed by the schedule runner."""

    async def get_string(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    async def set_string(self, key: str, value: str) -> None:
        """Insert or overwrite the value at ``key``."""
        ...

    async def delete_key(self, key: str) -> None:
        """Delete ``key``. Deleting an absent key is not an error."""
        ...


def encode_last_run(instant: datetime) -> str:
    """Serialize a last-run instant for the store."""
    return json.dumps(ensure_utc(instant).isoformat())


def decode_last_run(raw: str | bytes | None) -> datetime | None:
    """Parse a stored last-run value; None or empty means never run."""
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    if not raw:
        return None
    return from_iso8601(json.loads(raw))


class InMemoryLastRunStore:
    """Dict-backed store for single-process hosts and tests."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    async def get_string(self, key: str) -> str | None:
        return self._values.get(key)

    async def set_string(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete_key(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._values)


class RedisLastRunStore:
    """Redis-backed store shared by every worker.

    Each operation is a single Redis command (``GET``/``SET``/``DEL``), so a
    failed call leaves the record exactly as it was.

    Example:
        client = redis.asyncio.from_url("redis://localhost:6379/0", decode_responses=True)
        store = RedisLastRunStore(client)
    """

    def __init__(self, client: Any) -> None:
        """Initialize Redis store.

        Args:
            client: ``redis.asyncio.Redis`` client
        """
        self._client = client

    async def get_string(self, key: str) -> str | None:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            raise self._io_error("get", key, e) from e
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return raw

    async def set_string(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value)
        except RedisError as e:
            raise self._io_error("set", key, e) from e

    async def delete_key(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise self._io_error("delete", key, e) from e

    @staticmethod
    def _io_error(operation: str, key: str, cause: RedisError) -> BackendIOError:
        error = BackendIOError(f"Last-run {operation} failed for {key}", cause=cause)
        error.with_context(key=key, operation=operation, backend="redis")
        return error


__all__ = [
    "InMemoryLastRunStore",
    "LastRunStore",
    "RedisLastRunStore",
    "decode_last_run",
    "encode_last_run",
]
