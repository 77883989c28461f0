"""
Job-related type definitions for processing logic.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from jobqueue.notifications.bus import EventBus
from jobqueue.notifications.emitter import emit_job_event
from jobqueue.store.models import Job
from jobqueue.store.repository import JobRepository
from jobqueue.types.events import JobEventKind, done_address, fail_address


@dataclass
class CompletionSignal:
    """
    Outcome reported by processing logic for one job execution.
    """

    success: bool
    result: Any = None
    error: str | None = None

    @classmethod
    def from_done(cls, message: dict[str, Any]) -> "CompletionSignal":
        """Build a success signal from a `done` address message."""
        return cls(success=True, result=message.get("result"))

    @classmethod
    def from_fail(cls, message: dict[str, Any]) -> "CompletionSignal":
        """Build a failure signal from a `done_fail` address message."""
        return cls(success=False, error=message.get("error") or "Unknown error")


@dataclass
class JobContext:
    """
    Context passed to processing logic during execution.

    Processing logic reports its outcome through `done` or `fail` rather
    than by returning. Both may be called from any thread.
    """

    job: Job
    bus: EventBus
    repository: JobRepository
    loop: asyncio.AbstractEventLoop

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def data(self) -> dict[str, Any]:
        return self.job.data

    @property
    def attempt(self) -> int:
        """The 1-based number of the current attempt."""
        return self.job.attempts_made + 1

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last retry attempt."""
        return self.attempt >= self.job.max_attempts

    @property
    def remaining_attempts(self) -> int:
        """Get remaining retry attempts after this one."""
        return max(0, self.job.max_attempts - self.attempt)

    def done(self, result: Any = None) -> None:
        """
        Signal success.

        Args:
            result: Optional JSON-serializable value persisted on the job.
        """
        self._signal(done_address(self.job.id), {"result": result})

    def fail(self, error: BaseException | str) -> None:
        """
        Signal failure.

        Args:
            error: The exception or message describing the failure.
        """
        message = str(error) or type(error).__name__
        self._signal(fail_address(self.job.id), {"error": message})

    async def progress(self, completed: int, total: int) -> None:
        """
        Persist job progress and emit a `progress` event.

        Args:
            completed: Units of work done.
            total: Total units of work.
        """
        self.job = await self.repository.update_progress(self.job, completed, total)
        emit_job_event(
            self.bus,
            JobEventKind.PROGRESS,
            self.job,
            {"completed": completed, "total": total, "progress": self.job.progress},
        )

    def _signal(self, address: str, message: dict[str, Any]) -> None:
        self.loop.call_soon_threadsafe(self.bus.publish, address, message)
