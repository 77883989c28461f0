"""
Worker process.

Starts workers for every registered job type and runs them until
SIGTERM/SIGINT, then closes the queue gracefully.
"""

import asyncio
import logging
import signal

from jobqueue.config import get_settings
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import serve_metrics, setup_metrics
from jobqueue.observability.tracing import setup_tracing
from jobqueue.queue import Queue
from jobqueue.types.events import JobEventKind
from jobqueue.worker.handlers import get_handler, list_handlers

logger = logging.getLogger(__name__)


def _log_error_event(message: dict) -> None:
    """Surface worker `error` events in the process log."""
    job = message.get("job") or {}
    logger.error(
        "Worker reported error",
        extra={"job_id": job.get("id"), "detail": message.get("extra")},
    )


async def run_async() -> None:
    """Run the workers asynchronously."""
    setup_logging()
    setup_metrics()
    setup_tracing()

    settings = get_settings()
    serve_metrics(settings.prometheus_port)

    queue = Queue(settings)
    queue.on(JobEventKind.ERROR, _log_error_event)

    for job_type in list_handlers():
        queue.process(
            job_type,
            get_handler(job_type),
            concurrency=settings.worker_concurrency,
        )

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await shutdown.wait()
    finally:
        await queue.close()


def run() -> None:
    """Run the worker process."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
