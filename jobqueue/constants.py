"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - INACTIVE -> ACTIVE (claimed and activated by a worker)
    - ACTIVE -> COMPLETE (success)
    - ACTIVE -> FAILED (max attempts exhausted)
    - ACTIVE -> INACTIVE (failed attempt re-queued for retry)
    """

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.INACTIVE: frozenset({JobState.ACTIVE}),
    JobState.ACTIVE: frozenset({JobState.COMPLETE, JobState.FAILED, JobState.INACTIVE}),
    JobState.COMPLETE: frozenset(),
    JobState.FAILED: frozenset(),
}


class JobPriority(StrEnum):
    """Named job priorities."""

    LOW = "low"
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Priority scores (lower = claimed first)
PRIORITY_SCORES: dict[JobPriority, int] = {
    JobPriority.LOW: 10,
    JobPriority.NORMAL: 0,
    JobPriority.MEDIUM: -5,
    JobPriority.HIGH: -10,
    JobPriority.CRITICAL: -15,
}

# Default values
DEFAULT_PRIORITY = JobPriority.NORMAL
SEQUENCE_WIDTH = 20
SIGNAL_VALUE = "1"

# Backend key templates (relative to the configured key prefix)
KEY_SIGNAL_LIST = "{job_type}:jobs"
KEY_PRIORITY_SET = "jobs:{job_type}:{state}"
KEY_STATE_SET = "jobs:{state}"
KEY_JOB = "job:{job_id}"
KEY_IDS = "ids"
KEY_JOB_TYPES = "job:types"

# Notification addresses
ADDRESS_DONE = "done:{job_id}"
ADDRESS_DONE_FAIL = "done_fail:{job_id}"
ADDRESS_GLOBAL_EVENT = "job_{event}"
ADDRESS_JOB_EVENT = "job:{job_id}:{event}"

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_JOB_EVENTS = "job_events_total"
METRIC_WORKER_ERRORS = "worker_errors_total"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_CLAIM_JOB = "claim_job"
SPAN_EXECUTE_JOB = "execute_job"
