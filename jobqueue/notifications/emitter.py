"""
Job lifecycle event emission.
"""

import logging
from typing import Any

from jobqueue.notifications.bus import EventBus
from jobqueue.observability.metrics import get_metrics
from jobqueue.store.models import Job
from jobqueue.types.events import (
    EVENT_ROUTES,
    EventEnvelope,
    JobEventKind,
    global_address,
    job_address,
)

logger = logging.getLogger(__name__)


def emit_job_event(
    bus: EventBus,
    kind: JobEventKind,
    job: Job | None = None,
    extra: dict[str, Any] | None = None,
) -> list[str]:
    """
    Publish a lifecycle event according to its routing policy.

    The global address receives ``{"job": ..., "extra": ...}``. Job-scoped
    kinds are also published to the job's own address. `error` events are
    global only and may be emitted without a job.

    Args:
        bus: The event bus to publish on.
        kind: The event kind.
        job: The job the event concerns.
        extra: Additional event data.

    Returns:
        The addresses the event was published to.
    """
    route = EVENT_ROUTES[kind]
    job_json = job.to_json() if job is not None else None
    envelope = EventEnvelope(job=job_json, extra=extra).model_dump()

    addresses = [global_address(kind)]
    bus.publish(addresses[0], envelope)

    if route.job_scoped and job is not None:
        address = job_address(kind, job.id)
        bus.publish(address, envelope if route.envelope_to_job else job_json)
        addresses.append(address)

    get_metrics().record_job_event(kind.value)

    logger.debug(
        "Emitted job event",
        extra={"event_kind": kind.value, "job_id": job.id if job else None},
    )
    return addresses
