"""
Job handlers registry and implementations.

Job handlers must be idempotent - a failed attempt is re-queued and the
handler runs again for the same job. Handlers report their outcome through
the context (`ctx.done(...)` / `ctx.fail(...)`), not by returning.
"""

import asyncio
import logging
import random
from collections.abc import Callable

from jobqueue.types.job import JobContext
from jobqueue.worker.engine import ProcessingLogic

logger = logging.getLogger(__name__)

# Handler registry
_handlers: dict[str, ProcessingLogic] = {}


def register_handler(job_type: str) -> Callable[[ProcessingLogic], ProcessingLogic]:
    """
    Decorator to register a job handler.

    Args:
        job_type: The job type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(ctx: JobContext) -> None:
            ...
            ctx.done({"sent": True})
    """
    def decorator(handler: ProcessingLogic) -> ProcessingLogic:
        _handlers[job_type] = handler
        logger.info(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> ProcessingLogic | None:
    """
    Get the handler for a job type.

    Args:
        job_type: The job type.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return list(_handlers.keys())


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(ctx: JobContext) -> None:
    """
    Echo handler for testing.

    Completes with the job data as its result.
    """
    logger.info(
        "Echo job executing",
        extra={"job_id": ctx.job_id, "attempt": ctx.attempt}
    )

    ctx.done({"echo": ctx.data})


@register_handler("sleep")
async def handle_sleep(ctx: JobContext) -> None:
    """
    Sleep handler for testing delays.

    Data should contain:
    - duration_seconds: How long to sleep
    - steps: Number of progress updates to report (default 1)
    """
    duration = ctx.data.get("duration_seconds", 1)
    steps = max(1, int(ctx.data.get("steps", 1)))

    logger.info(
        "Sleep job starting",
        extra={"job_id": ctx.job_id, "duration": duration}
    )

    for step in range(1, steps + 1):
        await asyncio.sleep(duration / steps)
        await ctx.progress(step, steps)

    ctx.done({"slept_for": duration})


@register_handler("failing_job")
async def handle_failing_job(ctx: JobContext) -> None:
    """
    Handler that always fails - for testing retry logic.
    """
    logger.info(
        "Failing job executing (will fail)",
        extra={"job_id": ctx.job_id, "attempt": ctx.attempt}
    )

    ctx.fail(f"Intentional failure on attempt {ctx.attempt}")


@register_handler("random_failure")
def handle_random_failure(ctx: JobContext) -> None:
    """
    Handler that randomly fails - for testing retry behavior.

    Runs synchronously in a worker thread.

    Data should contain:
    - failure_rate: Probability of failure (0.0 to 1.0)
    """
    failure_rate = ctx.data.get("failure_rate", 0.5)

    if random.random() < failure_rate:
        logger.warning(
            "Random failure triggered",
            extra={"job_id": ctx.job_id, "attempt": ctx.attempt}
        )
        raise RuntimeError(f"Random failure on attempt {ctx.attempt}")

    ctx.done({"message": "Succeeded this time!"})
