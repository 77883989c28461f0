"""
Worker engine.

A worker claims jobs of a single type from the backend, one at a time,
runs the processing logic for each, and reports the outcome through the
job state machine and lifecycle events.
"""

import asyncio
import inspect
import logging
import os
import uuid
from collections.abc import Callable
from typing import Any

from jobqueue.config import Settings, get_settings
from jobqueue.constants import SIGNAL_VALUE, SPAN_CLAIM_JOB, SPAN_EXECUTE_JOB
from jobqueue.exceptions import BackendError, JobNotFoundError
from jobqueue.notifications.bus import EventBus, Subscription
from jobqueue.notifications.emitter import emit_job_event
from jobqueue.observability.logging import bind_job_context, clear_job_context
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.store.backend import Backend
from jobqueue.store.models import Job, now_ms, strip_sequence
from jobqueue.store.repository import JobRepository
from jobqueue.types.events import JobEventKind, done_address, fail_address
from jobqueue.types.job import CompletionSignal, JobContext

logger = logging.getLogger(__name__)

# Processing logic: a coroutine function or a plain function taking a JobContext
ProcessingLogic = Callable[[JobContext], Any]


class Worker:
    """
    Job worker that claims and executes jobs of one type.

    Features:
    - Zero-cost idle wait on the type's signal list (blocking pop)
    - Atomic claim via pop-minimum on the type's priority set
    - Completion reported by the processing logic over the event bus
    - Retry bookkeeping and terminal failure after max attempts
    - Cooperative shutdown at the claim boundary
    """

    def __init__(
        self,
        job_type: str,
        handler: ProcessingLogic,
        backend: Backend,
        bus: EventBus,
        settings: Settings | None = None,
        worker_id: str | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """
        Initialize the worker.

        Args:
            job_type: The job type this worker claims.
            handler: Processing logic invoked with a JobContext per job.
            backend: A backend connection owned by this worker alone.
            bus: Event bus for lifecycle events and completion signals.
            settings: Optional settings; defaults to the cached settings.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            clock: Millisecond clock used for start times and durations.
        """
        settings = settings or get_settings()

        self.job_type = job_type
        self.handler = handler
        self.worker_id = worker_id or (
            f"{os.uname().nodename}-{os.getpid()}-{uuid.uuid4().hex[:6]}"
        )
        self.block_timeout = settings.worker_block_timeout_seconds
        self.error_backoff = settings.worker_error_backoff_seconds
        self.job_timeout = settings.job_timeout_seconds

        self.current_job: Job | None = None
        self._backend = backend
        self._repo = JobRepository(backend, settings)
        self._bus = bus
        self._clock = clock or now_ms
        self._closed = False
        self._subscriptions: list[Subscription] = []
        self._handler_tasks: set[asyncio.Task] = set()
        self._pending_pop: asyncio.Future | None = None
        self._metrics = get_metrics()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def backend(self) -> Backend:
        return self._backend

    def stop(self) -> None:
        """
        Stop the worker gracefully.

        An idle wait for a signal is interrupted at once. An in-flight job
        finishes first.
        """
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._closed = True
        if self._pending_pop is not None and not self._pending_pop.done():
            self._pending_pop.cancel()

    async def close(self) -> None:
        """Stop the worker and release its backend connection."""
        self.stop()
        await self._backend.close()

    async def run(self) -> None:
        """
        Claim and process jobs until stopped.

        Every failure is absorbed here and turned into an `error` event; the
        loop only ends once the worker is closing.
        """
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "job_type": self.job_type},
        )

        while True:
            self._cleanup()

            try:
                job = await self.claim_next_job()
            except JobNotFoundError as e:
                logger.error(
                    "Claimed job has no record",
                    extra={"worker_id": self.worker_id, "job_id": e.job_id},
                )
                self._report_error(None, {"message": str(e), "id": e.job_id})
                continue
            except Exception as e:
                logger.exception(
                    f"Error claiming job: {e}",
                    extra={"worker_id": self.worker_id, "job_type": self.job_type},
                )
                self._report_error(None, {"message": str(e)})
                await asyncio.sleep(self.error_backoff)
                continue

            if job is None:
                break

            try:
                await self._process(job)
            except Exception as e:
                logger.exception(
                    f"Error processing job: {e}",
                    extra={"worker_id": self.worker_id, "job_id": job.id},
                )
                self._report_error(job, {"message": str(e)})

        self._cleanup()
        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def claim_next_job(self) -> Job | None:
        """
        Wait for and claim the next pending job of this worker's type.

        Blocks on the type's signal list, then atomically pops the
        lowest-scored member of the type's priority set.

        Returns:
            The claimed job, or None if the worker is closing.

        Raises:
            JobNotFoundError: If the popped id has no job record.
            BackendError: If re-arming the wait or loading the job fails.
        """
        keys = self._backend.keys
        signal_key = keys.signal_list(self.job_type)

        while True:
            if self._closed:
                return None
            self._pending_pop = asyncio.ensure_future(
                self._backend.blocking_pop(signal_key, self.block_timeout)
            )
            try:
                signal = await self._pending_pop
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if not self._closed or (current is not None and current.cancelling()):
                    raise
                logger.info(
                    "Wait for jobs interrupted, worker is closing",
                    extra={"worker_id": self.worker_id},
                )
                return None
            except BackendError as e:
                if self._closed:
                    logger.info(
                        "Stopped waiting for jobs, worker is closing",
                        extra={"worker_id": self.worker_id},
                    )
                    return None
                logger.warning(
                    "Blocking pop failed, re-arming wait",
                    extra={"worker_id": self.worker_id, "error": str(e)},
                )
                await self._backend.push(signal_key, SIGNAL_VALUE)
                await asyncio.sleep(self.error_backoff)
                continue
            finally:
                self._pending_pop = None

            if self._closed:
                if signal is not None:
                    await self._return_signal(signal_key, signal)
                return None

            if signal is None:
                continue

            with get_tracer().start_as_current_span(SPAN_CLAIM_JOB) as span:
                span.set_attribute("job_type", self.job_type)
                span.set_attribute("worker_id", self.worker_id)

                popped = await self._backend.pop_minimum(keys.priority_set(self.job_type))
                if popped is None:
                    logger.debug(
                        "Woken without a pending job",
                        extra={"worker_id": self.worker_id, "job_type": self.job_type},
                    )
                    continue

                member, _ = popped
                job_id = strip_sequence(member)
                span.set_attribute("job_id", job_id)

                job = await self._repo.get_job(job_id)

            if job is None:
                raise JobNotFoundError(job_id)

            self._metrics.record_job_claimed(self.job_type)
            logger.info(
                "Got job from backend",
                extra={"worker_id": self.worker_id, "job_id": job.id},
            )
            return job

    async def _return_signal(self, signal_key: str, signal: str) -> None:
        """Push a wake-up consumed during shutdown back for another worker."""
        try:
            await self._backend.push(signal_key, signal)
        except BackendError as e:
            logger.warning(
                "Could not return signal during shutdown",
                extra={"worker_id": self.worker_id, "error": str(e)},
            )

    async def _process(self, job: Job) -> None:
        """
        Drive one claimed job through its lifecycle.

        Handles the full lifecycle:
        1. Record started_at and transition to ACTIVE
        2. Invoke the processing logic and await its completion signal
        3. Mark COMPLETE, or count the failed attempt
        """
        self.current_job = job
        bind_job_context(self.worker_id, job.id, job.type)

        try:
            job = await self._repo.activate(job, started_at=self._clock())
        except Exception as e:
            logger.exception(
                "Failed to activate job",
                extra={"worker_id": self.worker_id, "job_id": job.id},
            )
            self._report_error(job, {"message": str(e)})
            return

        self.current_job = job
        emit_job_event(self._bus, JobEventKind.START, job)

        with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("job_type", job.type)
            span.set_attribute("attempt", job.attempts_made + 1)

            signal = await self._execute(job)

            span.set_attribute("success", signal.success)

        if signal.success:
            await self._complete(job, signal.result)
        else:
            await self._fail(job, signal.error or "Unknown error")

    async def _execute(self, job: Job) -> CompletionSignal:
        """
        Run the processing logic and wait for its completion signal.

        Listeners for the job's success and failure addresses are registered
        before the logic starts. The first signal wins; later ones are ignored.
        """
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[CompletionSignal] = loop.create_future()

        def resolve(signal: CompletionSignal) -> None:
            if not outcome.done():
                outcome.set_result(signal)

        self._subscriptions = [
            self._bus.subscribe(
                done_address(job.id),
                lambda message: resolve(CompletionSignal.from_done(message)),
            ),
            self._bus.subscribe(
                fail_address(job.id),
                lambda message: resolve(CompletionSignal.from_fail(message)),
            ),
        ]

        context = JobContext(job=job, bus=self._bus, repository=self._repo, loop=loop)

        logger.info(
            "Executing job",
            extra={"job_id": job.id, "job_type": job.type, "attempt": context.attempt},
        )
        handler_task = asyncio.create_task(self._invoke(context))
        self._handler_tasks.add(handler_task)
        handler_task.add_done_callback(self._handler_tasks.discard)

        try:
            return await asyncio.wait_for(outcome, timeout=self.job_timeout)
        except TimeoutError:
            logger.warning(
                "Job timed out waiting for completion",
                extra={"job_id": job.id, "timeout": self.job_timeout},
            )
            handler_task.cancel()
            return CompletionSignal(
                success=False,
                error=f"job timed out after {self.job_timeout}s",
            )

    async def _invoke(self, context: JobContext) -> None:
        """
        Call the processing logic off the engine's own control flow.

        Coroutine functions run on the loop; plain functions run in a thread.
        An exception escaping the call is reported as a failure signal.
        """
        try:
            if inspect.iscoroutinefunction(self.handler):
                await self.handler(context)
            else:
                result = await asyncio.to_thread(self.handler, context)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            logger.exception(
                "Processing logic raised",
                extra={"job_id": context.job_id, "error": str(e)},
            )
            context.fail(e)

    async def _complete(self, job: Job, result: Any) -> None:
        """Persist duration and result, mark COMPLETE and emit `complete`."""
        duration = self._clock() - (job.started_at or 0)

        try:
            job = await self._repo.complete(job, duration=duration, result=result)
            if job.remove_on_complete:
                await self._repo.remove_job(job.id)
        except Exception as e:
            logger.exception(
                "Failed to complete job",
                extra={"worker_id": self.worker_id, "job_id": job.id},
            )
            self._report_error(job, {"message": str(e)})
            return

        logger.info(
            "Job completed successfully",
            extra={"job_id": job.id, "duration": f"{duration}ms"},
        )
        self._metrics.record_job_completed(
            job_type=job.type,
            status="complete",
            duration_seconds=duration / 1000,
        )
        emit_job_event(self._bus, JobEventKind.COMPLETE, job)

    async def _fail(self, job: Job, error: str) -> None:
        """Count the failed attempt, then emit `failed_attempt` or `failed`."""
        duration = self._clock() - (job.started_at or 0)

        try:
            job = await self._repo.record_failed_attempt(job, error)
            if job.has_attempts:
                kind = JobEventKind.FAILED_ATTEMPT
            else:
                job = await self._repo.fail(job)
                kind = JobEventKind.FAILED
        except Exception as e:
            logger.exception(
                "Failed to record job failure",
                extra={"worker_id": self.worker_id, "job_id": job.id},
            )
            self._report_error(job, {"message": str(e)})
            return

        logger.warning(
            "Job failed",
            extra={
                "job_id": job.id,
                "error": error,
                "attempts_made": job.attempts_made,
                "max_attempts": job.max_attempts,
            },
        )
        self._metrics.record_job_completed(
            job_type=job.type,
            status=kind.value,
            duration_seconds=duration / 1000,
        )
        emit_job_event(self._bus, kind, job, {"message": error})

    def _report_error(self, job: Job | None, extra: dict[str, Any]) -> None:
        """Emit an `error` event and count it."""
        self._metrics.record_worker_error(self.job_type)
        emit_job_event(self._bus, JobEventKind.ERROR, job, extra)

    def _cleanup(self) -> None:
        """Drop listeners and job state left from the previous iteration."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self.current_job = None
        clear_job_context()
