"""
Job management routes.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from jobqueue.api.deps import QueueDep
from jobqueue.constants import API_V1_PREFIX
from jobqueue.exceptions import QueueClosedError
from jobqueue.store.models import Job
from jobqueue.types.api import (
    CreateJobRequest,
    CreateJobResponse,
    JobResponse,
    JobStatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])


def _job_to_response(job: Job) -> JobResponse:
    """Convert a Job model to a JobResponse."""
    return JobResponse.model_validate(job.model_dump(exclude={"seq"}))


@router.post(
    "",
    response_model=CreateJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a job",
    description="Enqueue a new job for the worker pool of its type.",
)
async def create_job(request: CreateJobRequest, queue: QueueDep) -> CreateJobResponse:
    """
    Create a new job.

    Args:
        request: Job creation request.
        queue: The served queue.

    Returns:
        CreateJobResponse with job details.
    """
    try:
        job = await queue.create_job(
            request.type,
            request.data,
            priority=request.priority,
            max_attempts=request.max_attempts,
            remove_on_complete=request.remove_on_complete,
        )
    except QueueClosedError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Queue is closed",
        )

    return CreateJobResponse(
        id=job.id,
        type=job.type,
        state=job.state,
        priority=job.priority,
        created_at=job.created_at,
    )


@router.get(
    "/stats/summary",
    response_model=JobStatsResponse,
    summary="Get job statistics",
    description="Get job counts by state, optionally for a single job type.",
)
async def get_job_stats(
    queue: QueueDep,
    job_type: str | None = Query(default=None),
) -> JobStatsResponse:
    """
    Get job statistics.

    Args:
        queue: The served queue.
        job_type: Optional job type filter.

    Returns:
        JobStatsResponse with state -> count.
    """
    stats = await queue.counts(job_type)
    job_types = await queue.job_types()

    return JobStatsResponse(job_type=job_type, stats=stats, job_types=job_types)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    description="Get detailed information about a specific job.",
)
async def get_job(job_id: str, queue: QueueDep) -> JobResponse:
    """
    Get job details by ID.

    Args:
        job_id: The job id.
        queue: The served queue.

    Returns:
        JobResponse with full job details.

    Raises:
        HTTPException: If job not found.
    """
    job = await queue.get_job(job_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    return _job_to_response(job)


@router.delete(
    "/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a job",
    description="Delete a job and its queue memberships.",
)
async def remove_job(job_id: str, queue: QueueDep) -> None:
    """
    Remove a job.

    Raises:
        HTTPException: If job not found.
    """
    removed = await queue.remove_job(job_id)

    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    logger.info("Job removed", extra={"job_id": job_id})
