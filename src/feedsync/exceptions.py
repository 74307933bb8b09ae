"""
feedsync exception hierarchy.

All domain-specific exceptions inherit from FeedSyncError, so a job handler
can catch any pipeline failure with one base class while the worker still
reports the precise type.

Hierarchy::

    FeedSyncError
    ├── ConfigurationError        - config loading, parsing, validation
    │   └── CronParseError        - invalid cron expression
    ├── FeedConnectionError       - remote host unreachable / auth failure
    ├── TransferError             - remote file missing or transfer truncated
    ├── DecodeError               - malformed feed structure or values
    ├── ReconciliationError       - catalog invariant violated for a record
    ├── CatalogStoreError         - catalog database read/write
    ├── JobQueueError             - queue broker unavailable / bad job state
    └── UnknownJobKindError       - job kind with no registered handler
"""

from __future__ import annotations


class FeedSyncError(Exception):
    """Base exception for all feedsync errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(FeedSyncError):
    """Raised when configuration loading, parsing, or validation fails."""


class CronParseError(ConfigurationError, ValueError):
    """Raised when a cron expression cannot be parsed."""


# --- Remote source -----------------------------------------------------------


class FeedConnectionError(FeedSyncError):
    """Raised when the remote file host cannot be reached or rejects the login.

    Not named ``ConnectionError`` to avoid shadowing the builtin.
    """

    def __init__(self, message: str, *, host: str | None = None) -> None:
        super().__init__(message, details={"host": host})
        self.host = host


class TransferError(FeedSyncError):
    """Raised when the remote file is absent or the transfer is incomplete."""

    def __init__(
        self,
        message: str,
        *,
        file_name: str | None = None,
        expected_size: int | None = None,
        actual_size: int | None = None,
    ) -> None:
        super().__init__(
            message,
            details={"file_name": file_name, "expected_size": expected_size, "actual_size": actual_size},
        )
        self.file_name = file_name
        self.expected_size = expected_size
        self.actual_size = actual_size


# --- Decoding ----------------------------------------------------------------


class DecodeError(FeedSyncError):
    """Raised when the feed document is malformed."""

    def __init__(self, message: str, *, position: tuple[int, int] | None = None) -> None:
        if position is not None:
            message = f"{message} (line {position[0]}, column {position[1]})"
        super().__init__(message, details={"position": position})
        self.position = position


# --- Reconciliation ----------------------------------------------------------


class ReconciliationError(FeedSyncError):
    """Raised when a record cannot be reconciled without breaking a catalog invariant."""

    def __init__(self, product_code: str, message: str, *, cause: Exception | None = None) -> None:
        full = f"Product '{product_code}': {message}"
        super().__init__(full, details={"product_code": product_code})
        self.product_code = product_code
        if cause is not None:
            self.__cause__ = cause


class CatalogStoreError(FeedSyncError):
    """Raised when the catalog database cannot be read or written."""


# --- Jobs --------------------------------------------------------------------


class JobQueueError(FeedSyncError):
    """Raised when the job queue cannot accept or hand out jobs."""


class UnknownJobKindError(FeedSyncError):
    """Raised when a job kind has no registered handler."""

    def __init__(self, kind: str, job_id: str | None = None) -> None:
        super().__init__(f"Unknown job kind: {kind}", details={"kind": kind, "job_id": job_id})
        self.kind = kind
        self.job_id = job_id
