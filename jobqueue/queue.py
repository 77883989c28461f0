"""
Queue facade.

Ties together job creation, worker pools and lifecycle event listeners for
one backend and one in-process event bus.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from jobqueue.config import Settings, get_settings
from jobqueue.constants import SPAN_SUBMIT_JOB, JobPriority
from jobqueue.exceptions import QueueClosedError
from jobqueue.notifications.bus import EventBus, Listener, Subscription
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.store.connection import create_backend
from jobqueue.store.models import Job
from jobqueue.store.repository import JobRepository
from jobqueue.types.events import JobEventKind, global_address, job_address
from jobqueue.worker.engine import ProcessingLogic, Worker

if TYPE_CHECKING:
    from fakeredis import FakeServer

logger = logging.getLogger(__name__)


class Queue:
    """
    Priority job queue.

    Producers call `create_job`; `process` starts workers that claim jobs of
    a type. Every worker gets its own backend connection and shares this
    queue's event bus.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        bus: EventBus | None = None,
        server: "FakeServer | None" = None,
    ):
        """
        Initialize the queue.

        Args:
            settings: Optional settings; defaults to the cached settings.
            bus: Event bus to publish on. A new one is created if omitted.
            server: fakeredis server used when the URL is "memory://".
        """
        self.settings = settings or get_settings()
        self.bus = bus or EventBus()
        self._server = server
        self._backend = create_backend(self.settings, server)
        self._repo = JobRepository(self._backend, self.settings)
        self._workers: list[Worker] = []
        self._tasks: list[asyncio.Task] = []
        self._closed = False
        self._metrics = get_metrics()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def repository(self) -> JobRepository:
        return self._repo

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    async def create_job(
        self,
        job_type: str,
        data: dict[str, Any] | None = None,
        *,
        priority: JobPriority | str | int = JobPriority.NORMAL,
        max_attempts: int | None = None,
        remove_on_complete: bool = False,
    ) -> Job:
        """
        Enqueue a job.

        Args:
            job_type: Worker pool that may claim the job.
            data: Payload handed to the processing logic.
            priority: Named priority or raw score (lower runs first).
            max_attempts: Attempts before terminal failure.
            remove_on_complete: Delete the job once it completes.

        Returns:
            The created job.

        Raises:
            QueueClosedError: If the queue has been closed.
        """
        if self._closed:
            raise QueueClosedError("Queue is closed")

        with get_tracer().start_as_current_span(SPAN_SUBMIT_JOB) as span:
            span.set_attribute("job_type", job_type)
            job = await self._repo.create_job(
                job_type=job_type,
                data=data,
                priority=priority,
                max_attempts=max_attempts,
                remove_on_complete=remove_on_complete,
            )
            span.set_attribute("job_id", job.id)

        self._metrics.record_job_submitted(job_type=job.type, priority=job.priority)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        """Load a job by id."""
        return await self._repo.get_job(job_id)

    async def remove_job(self, job_id: str) -> bool:
        """Delete a job. Returns False if it did not exist."""
        return await self._repo.remove_job(job_id)

    async def counts(self, job_type: str | None = None) -> dict[str, int]:
        """
        Get job counts by state and refresh the queue depth gauge.

        Args:
            job_type: Optional job type filter.

        Returns:
            Dictionary of state -> count.
        """
        stats = await self._repo.get_job_stats(job_type)
        for state, depth in stats.items():
            self._metrics.update_queue_depth(job_type or "all", state, depth)
        return stats

    async def job_types(self) -> list[str]:
        """List every job type that has been enqueued."""
        return await self._repo.list_job_types()

    async def ping(self) -> bool:
        """Check backend connectivity."""
        return await self._backend.ping()

    def process(
        self,
        job_type: str,
        handler: ProcessingLogic,
        concurrency: int = 1,
    ) -> list[Worker]:
        """
        Start workers for a job type.

        Must be called from a running event loop.

        Args:
            job_type: The job type to claim.
            handler: Processing logic invoked with a JobContext per job.
            concurrency: Number of workers to start.

        Returns:
            The started workers.

        Raises:
            QueueClosedError: If the queue has been closed.
        """
        if self._closed:
            raise QueueClosedError("Queue is closed")

        started = []
        for _ in range(concurrency):
            worker = Worker(
                job_type=job_type,
                handler=handler,
                backend=create_backend(self.settings, self._server),
                bus=self.bus,
                settings=self.settings,
            )
            task = asyncio.create_task(
                worker.run(),
                name=f"worker-{job_type}-{worker.worker_id}",
            )
            self._workers.append(worker)
            self._tasks.append(task)
            started.append(worker)

        logger.info(
            f"Started {concurrency} workers",
            extra={"job_type": job_type},
        )
        return started

    def on(self, kind: JobEventKind, listener: Listener) -> Subscription:
        """
        Listen for a lifecycle event of any job.

        The listener receives ``{"job": ..., "extra": ...}``.
        """
        return self.bus.subscribe(global_address(kind), listener)

    def on_job(self, job_id: str, kind: JobEventKind, listener: Listener) -> Subscription:
        """Listen for a lifecycle event of one job."""
        return self.bus.subscribe(job_address(kind, job_id), listener)

    async def join(self) -> None:
        """Wait until every worker has exited."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        """
        Close the queue gracefully.

        Idle workers stop waiting at once. In-flight jobs finish before
        connections are released.
        """
        if self._closed:
            return

        logger.info(f"Closing queue, waiting for {len(self._workers)} workers")
        self._closed = True

        for worker in self._workers:
            worker.stop()

        await self.join()

        for worker in self._workers:
            await worker.close()
        await self._backend.close()

        logger.info("Queue closed")
