"""Tests for schedule lock providers."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError

from tickgate.core.errors import BackendIOError
from tickgate.core.scheduling import (
    InMemoryLockProvider,
    LockProvider,
    RedisLockProvider,
    ScheduleLock,
)

KEY = "TaskSchedule::digest::ScheduleLock"


class TestInMemoryLockProvider:
    """Test in-memory lock operations."""

    def test_satisfies_protocol(self, locks):
        assert isinstance(locks, LockProvider)

    @pytest.mark.asyncio
    async def test_acquire_lock(self, locks):
        lock = await locks.acquire(KEY)

        assert lock == ScheduleLock(key=KEY, holder="worker-1")
        assert locks.is_locked(KEY) is True

    @pytest.mark.asyncio
    async def test_acquire_twice_same_instance(self, locks):
        """Same instance can re-acquire its own lock (refresh)."""
        await locks.acquire(KEY)
        assert await locks.acquire(KEY) is not None

    @pytest.mark.asyncio
    async def test_acquire_different_instance(self, locks, lock_table):
        """Different instance cannot acquire a held lock."""
        other = InMemoryLockProvider(instance_id="worker-2", table=lock_table)

        assert await locks.acquire(KEY) is not None
        assert await other.acquire(KEY) is None

    @pytest.mark.asyncio
    async def test_release_lock(self, locks, lock_table):
        other = InMemoryLockProvider(instance_id="worker-2", table=lock_table)
        lock = await locks.acquire(KEY)

        assert await locks.release(lock) is True
        assert locks.is_locked(KEY) is False
        assert await other.acquire(KEY) is not None

    @pytest.mark.asyncio
    async def test_release_not_held(self, locks):
        assert await locks.release(ScheduleLock(key=KEY, holder="worker-1")) is False

    @pytest.mark.asyncio
    async def test_release_held_by_other(self, locks, lock_table):
        other = InMemoryLockProvider(instance_id="worker-2", table=lock_table)
        await locks.acquire(KEY)

        assert await other.release(ScheduleLock(key=KEY, holder="worker-2")) is False
        assert locks.is_locked(KEY) is True

    @pytest.mark.asyncio
    async def test_expired_lock_can_be_taken(self, locks, lock_table):
        """A crashed holder's lock stops blocking once its TTL passes."""
        other = InMemoryLockProvider(instance_id="worker-2", table=lock_table)
        await locks.acquire(KEY, ttl_seconds=0)

        assert locks.is_locked(KEY) is False
        lock = await other.acquire(KEY)
        assert lock is not None
        assert lock.holder == "worker-2"

    def test_generated_instance_id(self):
        assert InMemoryLockProvider().instance_id != InMemoryLockProvider().instance_id


class TestRedisLockProvider:
    """Test redis-py ``Lock`` usage against a mocked client."""

    @pytest.fixture
    def redis_lock(self):
        redis_lock = MagicMock()
        redis_lock.acquire = AsyncMock(return_value=True)
        redis_lock.release = AsyncMock(return_value=None)
        return redis_lock

    @pytest.fixture
    def client(self, redis_lock):
        client = MagicMock()
        client.lock.return_value = redis_lock
        return client

    @pytest.mark.asyncio
    async def test_acquire(self, client, redis_lock):
        provider = RedisLockProvider(client, instance_id="worker-1")

        lock = await provider.acquire(KEY, ttl_seconds=30)

        assert lock.key == KEY
        assert lock.holder == "worker-1"
        assert lock.handle is redis_lock
        client.lock.assert_called_once_with(KEY, timeout=30, blocking=False)
        redis_lock.acquire.assert_awaited_once_with(blocking=False)

    @pytest.mark.asyncio
    async def test_acquire_held_elsewhere(self, client, redis_lock):
        redis_lock.acquire.return_value = False
        provider = RedisLockProvider(client, instance_id="worker-1")

        assert await provider.acquire(KEY) is None

    @pytest.mark.asyncio
    async def test_acquire_error(self, client, redis_lock):
        redis_lock.acquire.side_effect = RedisConnectionError("down")
        provider = RedisLockProvider(client)

        with pytest.raises(BackendIOError) as exc_info:
            await provider.acquire(KEY)

        assert exc_info.value.context.operation == "lock"

    @pytest.mark.asyncio
    async def test_release(self, client, redis_lock):
        provider = RedisLockProvider(client)
        lock = await provider.acquire(KEY)

        assert await provider.release(lock) is True
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_release_expired_lock(self, client, redis_lock):
        redis_lock.release.side_effect = LockError("Cannot release an unlocked lock")
        provider = RedisLockProvider(client)
        lock = await provider.acquire(KEY)

        assert await provider.release(lock) is False

    @pytest.mark.asyncio
    async def test_release_connection_error(self, client, redis_lock):
        redis_lock.release.side_effect = RedisConnectionError("down")
        provider = RedisLockProvider(client)
        lock = await provider.acquire(KEY)

        assert await provider.release(lock) is False
