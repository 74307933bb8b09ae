"""
Observability: structured logging with per-job correlation IDs.
"""

from feedsync.observability.structured_logging import (
    CorrelationIdFilter,
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
    log_job_end,
    log_job_start,
)

__all__ = [
    "StructuredFormatter",
    "CorrelationIdFilter",
    "add_correlation_id",
    "get_correlation_id",
    "log_job_start",
    "log_job_end",
]
