"""
Job records shared by the queue backends, scheduler and worker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

DEFAULT_RETENTION = 30


class JobKind(str, Enum):
    DOWNLOAD = "download"
    PROCESS = "process"


class JobStatus(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


def kind_key(kind: JobKind | str) -> str:
    """Plain string form of a job kind; unknown kinds pass through unchanged."""
    return kind.value if isinstance(kind, JobKind) else str(kind)


def utcnow() -> datetime:
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class RepeatOptions:
    """Cron pattern (5 fields) and optional IANA timezone for a repeatable job."""

    pattern: str
    timezone: str | None = None


@dataclass(frozen=True)
class JobOptions:
    """
    Per-job queue options.

    ``remove_on_complete`` / ``remove_on_fail`` bound how many finished jobs of
    each status the queue keeps for inspection; older ones are discarded.
    """

    remove_on_complete: int = DEFAULT_RETENTION
    remove_on_fail: int = DEFAULT_RETENTION
    repeat: RepeatOptions | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "remove_on_complete": self.remove_on_complete,
            "remove_on_fail": self.remove_on_fail,
            "repeat": (
                {"pattern": self.repeat.pattern, "timezone": self.repeat.timezone} if self.repeat else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> JobOptions:
        data = data or {}
        repeat = data.get("repeat")
        return cls(
            remove_on_complete=int(data.get("remove_on_complete", DEFAULT_RETENTION)),
            remove_on_fail=int(data.get("remove_on_fail", DEFAULT_RETENTION)),
            repeat=RepeatOptions(repeat["pattern"], repeat.get("timezone")) if repeat else None,
        )


@dataclass
class Job:
    id: str
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    options: JobOptions = field(default_factory=JobOptions)
    status: JobStatus = JobStatus.QUEUED
    attempts_made: int = 0
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    failed_reason: str | None = None
    return_value: Any = None
    # Repeatable registration this job was fired from, if any
    repeat_key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "payload": self.payload,
            "options": self.options.to_dict(),
            "status": self.status.value,
            "attempts_made": self.attempts_made,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "failed_reason": self.failed_reason,
            "return_value": self.return_value,
            "repeat_key": self.repeat_key,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        return cls(
            id=str(data["id"]),
            kind=str(data["kind"]),
            payload=dict(data.get("payload") or {}),
            options=JobOptions.from_dict(data.get("options")),
            status=JobStatus(data.get("status", JobStatus.QUEUED.value)),
            attempts_made=int(data.get("attempts_made", 0)),
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
            started_at=_parse_dt(data.get("started_at")),
            finished_at=_parse_dt(data.get("finished_at")),
            failed_reason=data.get("failed_reason"),
            return_value=data.get("return_value"),
            repeat_key=data.get("repeat_key"),
        )


@dataclass
class RepeatableJob:
    """A registered recurring job: fires a fresh Job of ``kind`` on every cron match."""

    key: str
    kind: str
    pattern: str
    timezone: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    options: JobOptions = field(default_factory=JobOptions)
    next_run_at: datetime | None = None

    @staticmethod
    def make_key(kind: JobKind | str, repeat: RepeatOptions) -> str:
        return f"{kind_key(kind)}::{repeat.pattern}::{repeat.timezone or ''}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind,
            "pattern": self.pattern,
            "timezone": self.timezone,
            "payload": self.payload,
            "options": self.options.to_dict(),
            "next_run_at": _iso(self.next_run_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepeatableJob:
        return cls(
            key=data["key"],
            kind=data["kind"],
            pattern=data["pattern"],
            timezone=data.get("timezone"),
            payload=dict(data.get("payload") or {}),
            options=JobOptions.from_dict(data.get("options")),
            next_run_at=_parse_dt(data.get("next_run_at")),
        )
