"""
Backend connection management.
Creates one dedicated backend connection per worker or producer.
"""

import logging
from typing import TYPE_CHECKING

from jobqueue.config import Settings, get_settings
from jobqueue.store.backend import Backend, RedisBackend

if TYPE_CHECKING:
    from fakeredis import FakeServer

logger = logging.getLogger(__name__)

MEMORY_URL_SCHEME = "memory://"

# Seconds between non-blocking pops on the in-memory backend
MEMORY_POLL_INTERVAL = 0.01

# Global in-process server for "memory://" URLs
_memory_server: "FakeServer | None" = None


def get_memory_server() -> "FakeServer":
    """
    Get or create the process-wide in-memory Redis server.

    Returns:
        FakeServer: The shared fakeredis server.
    """
    global _memory_server
    if _memory_server is None:
        from fakeredis import FakeServer

        _memory_server = FakeServer()
    return _memory_server


def create_backend(
    settings: Settings | None = None,
    server: "FakeServer | None" = None,
) -> Backend:
    """
    Open a new backend connection.

    Connections are never shared between workers: a blocking pop occupies
    its connection for the whole wait. A "memory://" URL connects to an
    in-process fakeredis server; every connection to the same server sees
    the same data.

    Args:
        settings: Settings to read the URL and key prefix from.
        server: fakeredis server to attach to when the URL is "memory://".

    Returns:
        Backend: A fresh backend connection.
    """
    settings = settings or get_settings()

    if settings.redis_url.startswith(MEMORY_URL_SCHEME):
        from fakeredis.aioredis import FakeRedis

        client = FakeRedis(server=server or get_memory_server(), decode_responses=True)
        backend = RedisBackend(client, settings.key_prefix, poll_interval=MEMORY_POLL_INTERVAL)
    else:
        backend = RedisBackend.from_url(settings.redis_url, settings.key_prefix)

    logger.debug(
        "Backend connection created",
        extra={"url": settings.redis_url, "key_prefix": settings.key_prefix},
    )
    return backend
