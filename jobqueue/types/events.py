"""
Event type definitions for lifecycle notifications.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from jobqueue.constants import (
    ADDRESS_DONE,
    ADDRESS_DONE_FAIL,
    ADDRESS_GLOBAL_EVENT,
    ADDRESS_JOB_EVENT,
)


class JobEventKind(StrEnum):
    """Lifecycle events emitted by workers."""

    START = "start"
    COMPLETE = "complete"
    FAILED = "failed"
    FAILED_ATTEMPT = "failed_attempt"
    PROGRESS = "progress"
    ERROR = "error"


@dataclass(frozen=True)
class EventRoute:
    """
    Routing policy for one event kind.

    Every event goes to its global address. `job_scoped` events also go to
    the per-job address; `envelope_to_job` selects whether that address
    receives the full envelope or the bare job representation.
    """

    job_scoped: bool
    envelope_to_job: bool = False


EVENT_ROUTES: dict[JobEventKind, EventRoute] = {
    JobEventKind.START: EventRoute(job_scoped=True),
    JobEventKind.COMPLETE: EventRoute(job_scoped=True),
    JobEventKind.FAILED: EventRoute(job_scoped=True, envelope_to_job=True),
    JobEventKind.FAILED_ATTEMPT: EventRoute(job_scoped=True, envelope_to_job=True),
    JobEventKind.PROGRESS: EventRoute(job_scoped=True, envelope_to_job=True),
    JobEventKind.ERROR: EventRoute(job_scoped=False),
}


def global_address(kind: JobEventKind) -> str:
    """Type-agnostic address every `kind` event is published to."""
    return ADDRESS_GLOBAL_EVENT.format(event=kind.value)


def job_address(kind: JobEventKind, job_id: str) -> str:
    """Point-to-point address for one job's `kind` events."""
    return ADDRESS_JOB_EVENT.format(job_id=job_id, event=kind.value)


def done_address(job_id: str) -> str:
    """Address the processing logic signals success on."""
    return ADDRESS_DONE.format(job_id=job_id)


def fail_address(job_id: str) -> str:
    """Address the processing logic signals failure on."""
    return ADDRESS_DONE_FAIL.format(job_id=job_id)


def route_addresses(kind: JobEventKind, job_id: str | None) -> list[str]:
    """
    Resolve every address a `kind` event is published to.

    Args:
        kind: The event kind.
        job_id: The job the event concerns, if any.

    Returns:
        The global address, followed by the per-job address when routed.
    """
    addresses = [global_address(kind)]
    if EVENT_ROUTES[kind].job_scoped and job_id is not None:
        addresses.append(job_address(kind, job_id))
    return addresses


class EventEnvelope(BaseModel):
    """
    Payload published on global event addresses.
    """

    job: dict[str, Any] | None = None
    extra: dict[str, Any] | None = None
