"""
Job repository for backend operations.
Implements job creation and the persisted lifecycle state machine.
"""

import logging
from typing import Any

from jobqueue.config import Settings, get_settings
from jobqueue.constants import PRIORITY_SCORES, JobPriority, JobState
from jobqueue.exceptions import JobNotFoundError, StateTransitionError
from jobqueue.store.backend import Backend
from jobqueue.store.models import Job, encode_fields, now_ms

logger = logging.getLogger(__name__)


def resolve_priority(priority: JobPriority | str | int) -> int:
    """Convert a named priority to its score; integers pass through."""
    if isinstance(priority, int):
        return priority
    return PRIORITY_SCORES[JobPriority(priority)]


class JobRepository:
    """
    Repository for job store operations.

    Every state change is a single atomic backend write that validates the
    transition first:
    - INACTIVE -> ACTIVE on activation
    - ACTIVE -> COMPLETE on success
    - ACTIVE -> INACTIVE when a failed attempt is re-queued
    - ACTIVE -> FAILED once attempts are exhausted
    """

    def __init__(self, backend: Backend, settings: Settings | None = None):
        """
        Initialize the repository with a backend connection.

        Args:
            backend: The backend connection to operate on.
            settings: Optional settings; defaults to the cached settings.
        """
        self._backend = backend
        self._settings = settings or get_settings()

    @property
    def backend(self) -> Backend:
        return self._backend

    async def create_job(
        self,
        job_type: str,
        data: dict[str, Any] | None = None,
        priority: JobPriority | str | int = JobPriority.NORMAL,
        max_attempts: int | None = None,
        remove_on_complete: bool = False,
    ) -> Job:
        """
        Create a job and put it in its type's pending set.

        Args:
            job_type: Worker pool that may claim the job.
            data: Payload handed to the processing logic.
            priority: Named priority or raw score (lower runs first).
            max_attempts: Attempts before terminal failure.
            remove_on_complete: Delete the job once it completes.

        Returns:
            The created job, in INACTIVE state.
        """
        seq = await self._backend.next_id()
        job = Job(
            id=str(seq),
            type=job_type,
            data=data or {},
            priority=resolve_priority(priority),
            seq=seq,
            max_attempts=max_attempts or self._settings.default_max_attempts,
            remove_on_complete=remove_on_complete,
        )

        await self._backend.save(job.id, job.to_hash())
        await self._backend.add_job_type(job_type)
        await self._backend.change_state(
            job_id=job.id,
            job_type=job.type,
            zid=job.zid,
            priority=job.priority,
            old_state=None,
            new_state=JobState.INACTIVE,
            fields=encode_fields(updated_at=job.created_at),
        )

        logger.info(
            "Created new job",
            extra={"job_id": job.id, "job_type": job_type, "priority": job.priority},
        )
        return job

    async def get_job(self, job_id: str) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job id.

        Returns:
            The Job or None if not found.
        """
        raw = await self._backend.get(job_id)
        if raw is None:
            return None
        return Job.from_hash(raw)

    async def remove_job(self, job_id: str) -> bool:
        """Delete a job and all its set memberships."""
        removed = await self._backend.delete(job_id)
        if removed:
            logger.info("Removed job", extra={"job_id": job_id})
        return removed

    async def transition(self, job: Job, to_state: JobState, **fields: Any) -> Job:
        """
        Persist a state transition together with its transition-specific fields.

        Args:
            job: The job in its current state.
            to_state: The target state.
            **fields: Extra job fields written in the same atomic write.

        Returns:
            The updated job.

        Raises:
            StateTransitionError: If the state machine forbids the transition.
            BackendError: If the write fails.
        """
        if not job.can_transition(to_state):
            raise StateTransitionError(job.id, job.state, to_state)

        fields["updated_at"] = now_ms()
        await self._backend.change_state(
            job_id=job.id,
            job_type=job.type,
            zid=job.zid,
            priority=job.priority,
            old_state=job.state,
            new_state=to_state,
            fields=encode_fields(**fields),
        )

        logger.debug(
            "Job state changed",
            extra={"job_id": job.id, "from_state": job.state, "to_state": to_state},
        )
        return job.model_copy(update={"state": to_state, **fields})

    async def activate(self, job: Job, started_at: int) -> Job:
        """Record the start time, then transition INACTIVE -> ACTIVE."""
        await self._backend.update(job.id, encode_fields(started_at=started_at))
        job = job.model_copy(update={"started_at": started_at})
        return await self.transition(job, JobState.ACTIVE)

    async def complete(
        self,
        job: Job,
        duration: int,
        result: Any = None,
    ) -> Job:
        """Persist duration and result, transition ACTIVE -> COMPLETE."""
        return await self.transition(
            job,
            JobState.COMPLETE,
            duration=duration,
            result=result,
        )

    async def fail(self, job: Job) -> Job:
        """Transition ACTIVE -> FAILED (terminal)."""
        return await self.transition(job, JobState.FAILED)

    async def record_failed_attempt(self, job: Job, error: str) -> Job:
        """
        Count a failed attempt.

        Increments `attempts_made` atomically. While attempts remain and
        re-queueing is enabled, the job goes back to INACTIVE so any worker
        of its type can retry it.

        Args:
            job: The active job that failed.
            error: Failure description.

        Returns:
            The updated job.

        Raises:
            JobNotFoundError: If the job record disappeared.
        """
        raw = await self._backend.record_failed_attempt(job.id, error, now_ms())
        if raw is None:
            raise JobNotFoundError(job.id)

        updated = Job.from_hash(raw)

        if updated.has_attempts and self._settings.requeue_failed_attempts:
            logger.info(
                "Job queued for retry",
                extra={"job_id": job.id, "attempts_made": updated.attempts_made},
            )
            updated = await self.transition(updated, JobState.INACTIVE)
        elif not updated.has_attempts:
            logger.warning(
                f"Job exhausted {updated.attempts_made} attempts",
                extra={"job_id": job.id, "error": error},
            )

        return updated

    async def update_progress(self, job: Job, completed: int, total: int) -> Job:
        """Persist job progress as a percentage."""
        progress = min(100, int(completed * 100 / total)) if total > 0 else 0
        updated_at = now_ms()
        await self._backend.update(
            job.id,
            encode_fields(progress=progress, updated_at=updated_at),
        )
        return job.model_copy(update={"progress": progress, "updated_at": updated_at})

    async def get_job_stats(self, job_type: str | None = None) -> dict[str, int]:
        """
        Get job counts by state.

        Args:
            job_type: Optional job type filter.

        Returns:
            Dictionary of state -> count.
        """
        return {
            state.value: await self._backend.count(state, job_type)
            for state in JobState
        }

    async def list_job_types(self) -> list[str]:
        """List every job type that has been enqueued."""
        return await self._backend.job_types()
