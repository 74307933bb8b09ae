"""
Structured logging for feedsync.

JSON-formatted logging with correlation IDs. The worker binds each job's id as
the correlation ID, so every line logged while a job runs (downloader,
decoder, reconciliation) can be traced back to that job.

Handlers are installed by ``feedsync.utils.logging.setup_logging``; set
``logging.format: json`` in the configuration for JSON lines.

Usage:
    from feedsync.observability import add_correlation_id

    with add_correlation_id(job.id):
        logger.info("Reconciling feed")  # includes correlation_id
"""

import json
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "message",
        "thread",
        "threadName",
        "taskName",
        "correlation_id",
    }
)


def get_correlation_id() -> str | None:
    """Current correlation ID, or None outside a job."""
    return _correlation_id.get()


@contextmanager
def add_correlation_id(correlation_id: str | None = None) -> Iterator[str]:
    """
    Bind a correlation ID for the duration of the block.

    Args:
        correlation_id: Correlation ID (auto-generated if not provided)

    Yields:
        The correlation ID
    """
    cid = correlation_id or str(uuid.uuid4())[:8]
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Copies the current correlation ID onto each record as ``correlation_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON log formatter.

    Emits timestamp, level, logger, message, correlation ID (if set), source
    location, exception info and any ``extra=`` fields passed to the log call.
    """

    def __init__(self, extra_fields: dict[str, Any] | None = None):
        super().__init__()
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None) or get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data["location"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        log_data.update(self.extra_fields)
        return json.dumps(log_data, default=str)


def log_job_start(job_id: str, kind: str) -> None:
    log = logging.getLogger("feedsync.jobs")
    log.info(f"Processing job id {job_id} with kind {kind}", extra={"event": "job.start", "job_id": job_id, "kind": kind})


def log_job_end(
    job_id: str,
    kind: str,
    success: bool,
    duration: float,
    error: BaseException | None = None,
) -> None:
    """Log the outcome of a job: info on success, error with the exception on failure."""
    log = logging.getLogger("feedsync.jobs")
    extra: dict[str, Any] = {
        "event": "job.end",
        "job_id": job_id,
        "kind": kind,
        "success": success,
        "duration_seconds": round(duration, 3),
    }
    if success:
        log.info(f"Job id {job_id} with kind {kind} has completed", extra=extra)
    else:
        extra["error_type"] = type(error).__name__ if error else None
        log.error(f"Job id {job_id} with kind {kind} has failed with error: {error}", extra=extra)
