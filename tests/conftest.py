"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from jobqueue.api.main import create_app
from jobqueue.config import Settings
from jobqueue.notifications.bus import EventBus
from jobqueue.queue import Queue
from jobqueue.store.backend import Backend
from jobqueue.store.connection import create_backend
from jobqueue.store.repository import JobRepository


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings on the in-process backend."""
    return Settings(
        redis_url="memory://",
        key_prefix="test",
        log_level="DEBUG",
        log_format="console",
        worker_block_timeout_seconds=0.05,
        worker_error_backoff_seconds=0.01,
    )


@pytest.fixture
def server() -> FakeServer:
    """Create an empty in-process Redis server, isolated per test."""
    return FakeServer()


@pytest_asyncio.fixture
async def redis(server: FakeServer) -> AsyncGenerator[FakeRedis]:
    """Create a raw client on the test server for inspecting keys."""
    client = FakeRedis(server=server, decode_responses=True)

    yield client

    await client.aclose()


@pytest_asyncio.fixture
async def backend(test_settings: Settings, server: FakeServer) -> AsyncGenerator[Backend]:
    """Create a backend connection on the test server."""
    backend = create_backend(test_settings, server)

    yield backend

    await backend.close()


@pytest.fixture
def bus() -> EventBus:
    """Create an event bus."""
    return EventBus()


@pytest.fixture
def repo(backend: Backend, test_settings: Settings) -> JobRepository:
    """Create a repository instance."""
    return JobRepository(backend, test_settings)


@pytest_asyncio.fixture
async def queue(
    test_settings: Settings,
    bus: EventBus,
    server: FakeServer,
) -> AsyncGenerator[Queue]:
    """Create a queue on the test server, closed after the test."""
    queue = Queue(test_settings, bus=bus, server=server)

    yield queue

    await queue.close()


@pytest_asyncio.fixture
async def app(queue: Queue) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app serving the test queue."""
    yield create_app(queue)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    """Poll a predicate until it holds or the timeout expires."""

    async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async def _poll() -> None:
            while not predicate():
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout=timeout)

    return _wait_for


@pytest.fixture
def sample_job_data() -> dict[str, Any]:
    """Create a sample job payload."""
    return {"message": "Hello, World!"}
