"""
Store module.
Contains the job model, backend adapters, and the job repository.
"""

from jobqueue.store.backend import Backend, Keys, RedisBackend
from jobqueue.store.connection import create_backend, get_memory_server
from jobqueue.store.models import Job, make_zid, now_ms, strip_sequence
from jobqueue.store.repository import JobRepository, resolve_priority

__all__ = [
    "Backend",
    "Keys",
    "RedisBackend",
    "create_backend",
    "get_memory_server",
    "Job",
    "JobRepository",
    "make_zid",
    "now_ms",
    "resolve_priority",
    "strip_sequence",
]
