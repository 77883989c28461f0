"""
Structured logging for workers and the API.

Every record leaving a worker while it drives a job carries the worker,
job and job type it belongs to, plus the active trace and span ids.
"""

import logging
import sys
from typing import Any

import structlog
from opentelemetry import trace

from jobqueue.config import Settings, get_settings

# Keys bound for the duration of one job's processing
JOB_CONTEXT_KEYS = ("worker_id", "job_id", "job_type")

# Libraries that log every request or command at INFO
_NOISY_LOGGERS = ("uvicorn.access", "redis", "httpx", "fakeredis")


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach the current span's trace_id and span_id, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _service_adder(service: str) -> structlog.typing.Processor:
    def add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def _renderer(log_format: str) -> structlog.typing.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(settings: Settings | None = None) -> None:
    """
    Route stdlib and structlog records through one structlog formatter.

    Modules keep logging with `logging.getLogger(__name__)` and `extra=`;
    the extras, the bound job context and the trace ids all end up as
    fields of the rendered record.

    Args:
        settings: Optional settings; defaults to the cached settings.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    shared_processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_trace_context,
        _service_adder(settings.otel_service_name),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_job_context(worker_id: str, job_id: str, job_type: str) -> None:
    """Tag all log records from this task with the job being processed."""
    structlog.contextvars.bind_contextvars(
        worker_id=worker_id,
        job_id=job_id,
        job_type=job_type,
    )


def clear_job_context() -> None:
    """Drop the tags set by `bind_job_context`."""
    structlog.contextvars.unbind_contextvars(*JOB_CONTEXT_KEYS)
