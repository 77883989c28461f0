"""
Backend store adapter.

A thin surface of atomic operations (blocking pop, priority pop-minimum,
push, job hash reads and writes) that the worker engine and the job
repository depend on. Backends own no business logic.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager

from redis.asyncio import Redis
from redis.exceptions import RedisError

from jobqueue.constants import (
    KEY_IDS,
    KEY_JOB,
    KEY_JOB_TYPES,
    KEY_PRIORITY_SET,
    KEY_SIGNAL_LIST,
    KEY_STATE_SET,
    SIGNAL_VALUE,
    JobState,
)
from jobqueue.exceptions import BackendError
from jobqueue.store.models import make_zid

logger = logging.getLogger(__name__)


class Keys:
    """Key naming for everything the queue keeps in the backend."""

    def __init__(self, prefix: str):
        self.prefix = prefix

    def _key(self, template: str, **values: str) -> str:
        return f"{self.prefix}:{template.format(**values)}"

    def signal_list(self, job_type: str) -> str:
        """List used purely to wake workers blocked on `job_type`."""
        return self._key(KEY_SIGNAL_LIST, job_type=job_type)

    def priority_set(self, job_type: str, state: JobState = JobState.INACTIVE) -> str:
        """Per-type sorted set of jobs in `state`, scored by priority."""
        return self._key(KEY_PRIORITY_SET, job_type=job_type, state=state.value.upper())

    def state_set(self, state: JobState) -> str:
        """Type-agnostic sorted set of jobs in `state`."""
        return self._key(KEY_STATE_SET, state=state.value.upper())

    def job(self, job_id: str) -> str:
        return self._key(KEY_JOB, job_id=job_id)

    @property
    def ids(self) -> str:
        return self._key(KEY_IDS)

    @property
    def job_types(self) -> str:
        return self._key(KEY_JOB_TYPES)


class Backend(ABC):
    """
    Atomic-operation surface over the backend store.

    Every failure of the underlying store is raised as `BackendError`.
    Instances are connections: each worker owns its own and never shares it,
    because `blocking_pop` occupies the connection for the whole wait.
    """

    def __init__(self, prefix: str):
        self.keys = Keys(prefix)

    @abstractmethod
    async def blocking_pop(self, key: str, timeout: float) -> str | None:
        """Pop the head of list `key`, waiting up to `timeout` seconds (None on timeout)."""

    @abstractmethod
    async def push(self, key: str, value: str) -> None:
        """Push `value` onto list `key`, waking one blocked popper."""

    @abstractmethod
    async def pop_minimum(self, key: str) -> tuple[str, float] | None:
        """Atomically remove and return the lowest-scored member of sorted set `key`."""

    @abstractmethod
    async def get(self, job_id: str) -> dict[str, str] | None:
        """Load the raw job hash, or None if absent."""

    @abstractmethod
    async def save(self, job_id: str, fields: dict[str, str]) -> None:
        """Write a complete job hash."""

    @abstractmethod
    async def update(self, job_id: str, fields: dict[str, str]) -> None:
        """Write a subset of job hash fields."""

    @abstractmethod
    async def delete(self, job_id: str) -> bool:
        """Remove the job hash and every set membership. Returns False if absent."""

    @abstractmethod
    async def record_failed_attempt(
        self,
        job_id: str,
        error: str,
        failed_at: int,
    ) -> dict[str, str] | None:
        """
        Atomically increment `attempts_made` and store the failure.

        Returns the updated raw hash, or None if the job does not exist.
        """

    @abstractmethod
    async def change_state(
        self,
        job_id: str,
        job_type: str,
        zid: str,
        priority: int,
        old_state: JobState | None,
        new_state: JobState,
        fields: dict[str, str],
    ) -> None:
        """
        Atomically persist a state transition.

        Writes `fields` and the new state, moves the job between state sets,
        and on `inactive` pushes a signal onto the type's signal list.
        """

    @abstractmethod
    async def next_id(self) -> int:
        """Allocate the next job id / insertion sequence."""

    @abstractmethod
    async def add_job_type(self, job_type: str) -> None:
        """Record that jobs of `job_type` exist."""

    @abstractmethod
    async def job_types(self) -> list[str]:
        """List every known job type."""

    @abstractmethod
    async def count(self, state: JobState, job_type: str | None = None) -> int:
        """Number of jobs in `state`, optionally for one type."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check connectivity."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise redis client errors as BackendError."""
    try:
        yield
    except RedisError as exc:
        raise BackendError(f"{operation} failed: {exc}") from exc


class RedisBackend(Backend):
    """
    Backend on a Redis server, using lists, hashes and sorted sets.

    With `poll_interval` set, the blocking pop is emulated with a
    non-blocking LPOP and a sleep between attempts. fakeredis needs this:
    its async blocking commands do not yield to the event loop.
    """

    def __init__(self, client: Redis, prefix: str, poll_interval: float | None = None):
        """
        Initialize the backend.

        Args:
            client: A redis.asyncio client created with decode_responses=True.
            prefix: Key prefix for every key the queue touches.
            poll_interval: Seconds between pops when emulating BLPOP.
        """
        super().__init__(prefix)
        self._client = client
        self._poll_interval = poll_interval
        self._closed = False

    @classmethod
    def from_url(cls, url: str, prefix: str) -> "RedisBackend":
        """Open a dedicated connection pool for one worker or producer."""
        return cls(Redis.from_url(url, decode_responses=True), prefix)

    @property
    def closed(self) -> bool:
        return self._closed

    async def blocking_pop(self, key: str, timeout: float) -> str | None:
        if self._poll_interval is not None:
            return await self._poll_pop(key, timeout)

        with _translate_errors("blocking_pop"):
            result = await self._client.blpop([key], timeout=timeout)
        if result is None:
            return None
        _, value = result
        return value

    async def _poll_pop(self, key: str, timeout: float) -> str | None:
        """Pop with LPOP until a value arrives, `timeout` expires or the backend closes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout > 0 else None

        while True:
            if self._closed:
                raise BackendError("blocking_pop failed: connection closed")
            with _translate_errors("blocking_pop"):
                value = await self._client.lpop(key)
            if value is not None:
                return value
            if deadline is not None and loop.time() >= deadline:
                return None
            await asyncio.sleep(self._poll_interval)

    async def push(self, key: str, value: str) -> None:
        with _translate_errors("push"):
            await self._client.lpush(key, value)

    async def pop_minimum(self, key: str) -> tuple[str, float] | None:
        with _translate_errors("pop_minimum"):
            popped = await self._client.zpopmin(key)
        if not popped:
            return None
        member, score = popped[0]
        return member, float(score)

    async def get(self, job_id: str) -> dict[str, str] | None:
        with _translate_errors("get"):
            raw = await self._client.hgetall(self.keys.job(job_id))
        return raw or None

    async def save(self, job_id: str, fields: dict[str, str]) -> None:
        with _translate_errors("save"):
            async with self._client.pipeline() as pipe:
                pipe.delete(self.keys.job(job_id))
                pipe.hset(self.keys.job(job_id), mapping=fields)
                await pipe.execute()

    async def update(self, job_id: str, fields: dict[str, str]) -> None:
        if not fields:
            return
        with _translate_errors("update"):
            await self._client.hset(self.keys.job(job_id), mapping=fields)

    async def delete(self, job_id: str) -> bool:
        with _translate_errors("delete"):
            raw = await self._client.hgetall(self.keys.job(job_id))
            if not raw:
                return False
            zid = make_zid(int(raw.get("seq", 0)), job_id)
            job_type = raw.get("type", "")
            async with self._client.pipeline() as pipe:
                pipe.delete(self.keys.job(job_id))
                for state in JobState:
                    pipe.zrem(self.keys.state_set(state), zid)
                    pipe.zrem(self.keys.priority_set(job_type, state), zid)
                await pipe.execute()
        return True

    async def record_failed_attempt(
        self,
        job_id: str,
        error: str,
        failed_at: int,
    ) -> dict[str, str] | None:
        key = self.keys.job(job_id)
        with _translate_errors("record_failed_attempt"):
            if not await self._client.exists(key):
                return None
            async with self._client.pipeline() as pipe:
                pipe.hincrby(key, "attempts_made", 1)
                pipe.hset(
                    key,
                    mapping={
                        "error": error,
                        "failed_at": str(failed_at),
                        "updated_at": str(failed_at),
                    },
                )
                pipe.hgetall(key)
                results = await pipe.execute()
        return results[-1]

    async def change_state(
        self,
        job_id: str,
        job_type: str,
        zid: str,
        priority: int,
        old_state: JobState | None,
        new_state: JobState,
        fields: dict[str, str],
    ) -> None:
        with _translate_errors("change_state"):
            async with self._client.pipeline() as pipe:
                if old_state is not None:
                    pipe.zrem(self.keys.state_set(old_state), zid)
                    pipe.zrem(self.keys.priority_set(job_type, old_state), zid)
                pipe.hset(
                    self.keys.job(job_id),
                    mapping={**fields, "state": new_state.value},
                )
                pipe.zadd(self.keys.state_set(new_state), {zid: priority})
                pipe.zadd(self.keys.priority_set(job_type, new_state), {zid: priority})
                if new_state == JobState.INACTIVE:
                    pipe.lpush(self.keys.signal_list(job_type), SIGNAL_VALUE)
                await pipe.execute()

    async def next_id(self) -> int:
        with _translate_errors("next_id"):
            return int(await self._client.incr(self.keys.ids))

    async def add_job_type(self, job_type: str) -> None:
        with _translate_errors("add_job_type"):
            await self._client.sadd(self.keys.job_types, job_type)

    async def job_types(self) -> list[str]:
        with _translate_errors("job_types"):
            members = await self._client.smembers(self.keys.job_types)
        return sorted(members)

    async def count(self, state: JobState, job_type: str | None = None) -> int:
        if job_type is None:
            key = self.keys.state_set(state)
        else:
            key = self.keys.priority_set(job_type, state)
        with _translate_errors("count"):
            return int(await self._client.zcard(key))

    async def ping(self) -> bool:
        if self._closed:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            logger.warning("Backend ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with _translate_errors("close"):
            await self._client.aclose()
