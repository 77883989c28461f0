"""
Exception hierarchy for the job queue.
"""


class JobQueueError(Exception):
    """Base class for all job queue errors."""


class BackendError(JobQueueError):
    """A backend store operation failed (connection drop, timeout, ...)."""


class JobNotFoundError(JobQueueError):
    """A claimed job id has no job record in the store."""

    def __init__(self, job_id: str):
        super().__init__("job_not_exist")
        self.job_id = job_id


class StateTransitionError(JobQueueError):
    """A job was asked to make a transition its state machine forbids."""

    def __init__(self, job_id: str, from_state: str, to_state: str):
        super().__init__(
            f"Illegal transition for job {job_id}: {from_state} -> {to_state}"
        )
        self.job_id = job_id
        self.from_state = from_state
        self.to_state = to_state


class QueueClosedError(JobQueueError):
    """The queue has been closed and accepts no more work."""
