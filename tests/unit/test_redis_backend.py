"""
Unit tests for the Redis backend, run against fakeredis.
"""

import asyncio
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fakeredis import FakeServer, aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from jobqueue.constants import JobState
from jobqueue.exceptions import BackendError
from jobqueue.store.backend import RedisBackend
from jobqueue.store.models import make_zid
from jobqueue.store.repository import JobRepository


class TestRedisBackend:
    """Tests for RedisBackend primitives."""

    @pytest_asyncio.fixture
    async def client(self) -> AsyncGenerator[aioredis.FakeRedis]:
        client = aioredis.FakeRedis(server=FakeServer(), decode_responses=True)
        yield client
        await client.aclose()

    @pytest.fixture
    def redis_backend(self, client: aioredis.FakeRedis) -> RedisBackend:
        return RedisBackend(client, "q")

    def test_key_layout(self, redis_backend: RedisBackend):
        """Test key names under the prefix."""
        keys = redis_backend.keys

        assert keys.signal_list("email") == "q:email:jobs"
        assert keys.priority_set("email") == "q:jobs:email:INACTIVE"
        assert keys.state_set(JobState.COMPLETE) == "q:jobs:COMPLETE"
        assert keys.job("7") == "q:job:7"
        assert keys.ids == "q:ids"

    @pytest.mark.asyncio
    async def test_push_and_pop(self, redis_backend: RedisBackend):
        """Test a pushed signal is returned by the blocking pop."""
        await redis_backend.push("q:email:jobs", "1")

        assert await redis_backend.blocking_pop("q:email:jobs", 1) == "1"

    @pytest.mark.asyncio
    async def test_pop_minimum_order(
        self,
        redis_backend: RedisBackend,
        client: aioredis.FakeRedis,
    ):
        """Test the lowest score wins and equal scores pop in insertion order."""
        await client.zadd(
            "q:jobs:email:INACTIVE",
            {make_zid(2, "2"): 0, make_zid(1, "1"): 0, make_zid(3, "3"): -10},
        )

        popped = [await redis_backend.pop_minimum("q:jobs:email:INACTIVE") for _ in range(3)]

        assert [member for member, _ in popped] == [
            make_zid(3, "3"),
            make_zid(1, "1"),
            make_zid(2, "2"),
        ]
        assert await redis_backend.pop_minimum("q:jobs:email:INACTIVE") is None

    @pytest.mark.asyncio
    async def test_job_lifecycle(self, redis_backend: RedisBackend, client: aioredis.FakeRedis):
        """Test a job through creation, activation and completion."""
        repo = JobRepository(redis_backend)

        job = await repo.create_job(job_type="email", data={"n": 1}, priority=5)
        assert await client.lrange("q:email:jobs", 0, -1) == ["1"]
        assert await client.zscore("q:jobs:email:INACTIVE", job.zid) == 5

        active = await repo.activate(job, started_at=1000)
        assert await client.zscore("q:jobs:email:INACTIVE", job.zid) is None
        assert await client.zscore("q:jobs:ACTIVE", job.zid) == 5

        await repo.complete(active, duration=250, result={"ok": True})
        loaded = await repo.get_job(job.id)
        assert loaded.state == JobState.COMPLETE
        assert loaded.duration == 250
        assert loaded.result == {"ok": True}
        assert await redis_backend.count(JobState.COMPLETE) == 1
        assert await redis_backend.job_types() == ["email"]

    @pytest.mark.asyncio
    async def test_record_failed_attempt(self, redis_backend: RedisBackend):
        """Test the attempt counter increments atomically."""
        repo = JobRepository(redis_backend)
        job = await repo.create_job(job_type="email", max_attempts=3)

        raw = await redis_backend.record_failed_attempt(job.id, "boom", 2000)

        assert raw["attempts_made"] == "1"
        assert raw["error"] == "boom"
        assert raw["failed_at"] == "2000"
        assert await redis_backend.record_failed_attempt("404", "boom", 2000) is None

    @pytest.mark.asyncio
    async def test_delete(self, redis_backend: RedisBackend, client: aioredis.FakeRedis):
        """Test deletion removes the hash and set memberships."""
        repo = JobRepository(redis_backend)
        job = await repo.create_job(job_type="email")

        assert await redis_backend.delete(job.id) is True
        assert await client.exists("q:job:1") == 0
        assert await client.zcard("q:jobs:email:INACTIVE") == 0
        assert await client.zcard("q:jobs:INACTIVE") == 0
        assert await redis_backend.delete(job.id) is False

    @pytest.mark.asyncio
    async def test_errors_are_translated(self, redis_backend: RedisBackend, client):
        """Test redis client errors surface as BackendError."""
        client.zpopmin = AsyncMock(side_effect=RedisConnectionError("connection lost"))

        with pytest.raises(BackendError, match="pop_minimum failed"):
            await redis_backend.pop_minimum("q:jobs:email:INACTIVE")

    @pytest.mark.asyncio
    async def test_ping(self, redis_backend: RedisBackend):
        assert await redis_backend.ping() is True

    @pytest.mark.asyncio
    async def test_ping_after_close(self, redis_backend: RedisBackend):
        await redis_backend.close()

        assert redis_backend.closed is True
        assert await redis_backend.ping() is False


class TestPollingPop:
    """Tests for the emulated blocking pop used by "memory://" URLs."""

    @pytest.fixture
    def polling_backend(self) -> RedisBackend:
        client = aioredis.FakeRedis(server=FakeServer(), decode_responses=True)
        return RedisBackend(client, "q", poll_interval=0.01)

    @pytest.mark.asyncio
    async def test_returns_pushed_value(self, polling_backend: RedisBackend):
        """Test a value pushed during the wait is returned."""
        waiter = asyncio.create_task(polling_backend.blocking_pop("q:email:jobs", 1))
        await asyncio.sleep(0.03)

        await polling_backend.push("q:email:jobs", "1")

        assert await asyncio.wait_for(waiter, timeout=1) == "1"
        await polling_backend.close()

    @pytest.mark.asyncio
    async def test_times_out(self, polling_backend: RedisBackend):
        """Test an empty list yields None once the timeout expires."""
        assert await polling_backend.blocking_pop("q:email:jobs", 0.05) is None
        await polling_backend.close()

    @pytest.mark.asyncio
    async def test_close_wakes_unbounded_wait(self, polling_backend: RedisBackend):
        """Test closing the connection ends a wait that has no timeout."""
        waiter = asyncio.create_task(polling_backend.blocking_pop("q:email:jobs", 0))
        await asyncio.sleep(0.03)

        await polling_backend.close()

        with pytest.raises(BackendError, match="connection closed"):
            await asyncio.wait_for(waiter, timeout=1)
