"""
Type definitions for the job queue.
Contains input/output type definitions grouped by module.

`jobqueue.types.job` is imported directly; it depends on the notification
and store layers, which themselves import the event types below.
"""

from jobqueue.types.api import (
    CreateJobRequest,
    CreateJobResponse,
    HealthResponse,
    JobResponse,
    JobStatsResponse,
)
from jobqueue.types.events import (
    EVENT_ROUTES,
    EventEnvelope,
    EventRoute,
    JobEventKind,
)

__all__ = [
    # API types
    "CreateJobRequest",
    "CreateJobResponse",
    "JobResponse",
    "JobStatsResponse",
    "HealthResponse",
    # Event types
    "EVENT_ROUTES",
    "EventEnvelope",
    "EventRoute",
    "JobEventKind",
]
