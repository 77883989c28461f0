"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.constants import DEFAULT_PRIORITY, JobPriority, JobState


class CreateJobRequest(BaseModel):
    """Request body for creating a new job."""

    type: str = Field(..., min_length=1, description="Job type selecting the worker pool")
    data: dict[str, Any] = Field(default_factory=dict, description="Job payload data")
    priority: JobPriority | int = Field(
        default=DEFAULT_PRIORITY, description="Named priority or raw score (lower runs first)"
    )
    max_attempts: int | None = Field(
        default=None, ge=1, le=100, description="Maximum attempts before terminal failure"
    )
    remove_on_complete: bool = Field(
        default=False, description="Delete the job once it completes"
    )


class CreateJobResponse(BaseModel):
    """Response body after creating a job."""

    id: str
    type: str
    state: JobState
    priority: int
    created_at: int
    message: str = "Job created successfully"


class JobResponse(BaseModel):
    """Full job details response."""

    id: str
    type: str
    data: dict[str, Any]
    priority: int
    state: JobState
    attempts_made: int
    max_attempts: int
    created_at: int
    updated_at: int | None
    started_at: int | None
    failed_at: int | None
    duration: int | None
    result: Any = None
    error: str | None
    progress: int
    remove_on_complete: bool


class JobStatsResponse(BaseModel):
    """Job counts by state."""

    job_type: str | None
    stats: dict[str, int]
    job_types: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    backend: str
    timestamp: datetime
