"""
Job queue contract and the in-process implementation.

A queue holds waiting jobs, recurring (repeatable) registrations and a bounded
history of finished jobs, and provides named locks so handlers can exclude
each other per resource.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from feedsync.exceptions import JobQueueError
from feedsync.jobs.cron import next_fire_time
from feedsync.jobs.types import Job, JobKind, JobOptions, JobStatus, RepeatableJob, kind_key, utcnow
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.jobs.queue")


class JobQueue(ABC):
    """Queue backend used by the scheduler (producer side) and the worker (consumer side)."""

    name: str

    @abstractmethod
    async def enqueue(
        self, kind: JobKind | str, payload: dict[str, Any] | None = None, options: JobOptions | None = None
    ) -> Job:
        """Add a one-off job to the waiting list."""

    @abstractmethod
    async def add_repeatable(
        self,
        kind: JobKind | str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | None = None,
        *,
        now: datetime | None = None,
    ) -> RepeatableJob | None:
        """
        Register a recurring job (``options.repeat`` is required).

        Returns None when the same kind/pattern/timezone is already registered.
        """

    @abstractmethod
    async def list_repeatable(self, kind: JobKind | str | None = None) -> list[RepeatableJob]: ...

    @abstractmethod
    async def remove_repeatable(self, key: str) -> bool: ...

    @abstractmethod
    async def promote_due_repeatables(self, now: datetime | None = None) -> list[Job]:
        """Enqueue one job per repeatable whose next fire time has passed, then reschedule it."""

    @abstractmethod
    async def fetch_next(self, timeout: float | None = None) -> Job | None:
        """Take the oldest waiting job and mark it active; None if nothing arrived within ``timeout``."""

    @abstractmethod
    async def mark_completed(self, job: Job, return_value: Any = None) -> None: ...

    @abstractmethod
    async def mark_failed(self, job: Job, reason: str) -> None: ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Job | None: ...

    @abstractmethod
    async def list_jobs(self, status: JobStatus | None = None) -> list[Job]:
        """Known jobs, newest first."""

    @abstractmethod
    def lock(self, resource: str) -> Any:
        """Async context manager holding an exclusive lock on ``resource``."""

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> JobQueue:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()


def _require_repeat(options: JobOptions | None) -> JobOptions:
    if options is None or options.repeat is None:
        raise JobQueueError("Repeatable jobs need JobOptions.repeat")
    return options


class InMemoryJobQueue(JobQueue):
    """
    Single-process queue.

    Used by tests, ``run-once`` and single-worker deployments without Redis.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._ids = itertools.count(1)
        self._jobs: dict[str, Job] = {}
        self._waiting: deque[str] = deque()
        self._finished: dict[JobStatus, deque[str]] = {
            JobStatus.COMPLETED: deque(),
            JobStatus.FAILED: deque(),
        }
        self._repeatables: dict[str, RepeatableJob] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._arrived = asyncio.Condition()
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise JobQueueError(f"Queue '{self.name}' is closed")

    async def enqueue(
        self, kind: JobKind | str, payload: dict[str, Any] | None = None, options: JobOptions | None = None
    ) -> Job:
        self._check_open()
        job = Job(
            id=str(next(self._ids)),
            kind=kind_key(kind),
            payload=dict(payload or {}),
            options=options or JobOptions(),
        )
        return await self._push(job)

    async def _push(self, job: Job) -> Job:
        self._jobs[job.id] = job
        async with self._arrived:
            self._waiting.append(job.id)
            self._arrived.notify()
        logger.debug(f"Enqueued job {job.id} ({job.kind})")
        return job

    async def add_repeatable(
        self,
        kind: JobKind | str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | None = None,
        *,
        now: datetime | None = None,
    ) -> RepeatableJob | None:
        self._check_open()
        options = _require_repeat(options)
        repeat = options.repeat
        assert repeat is not None
        key = RepeatableJob.make_key(kind, repeat)
        if key in self._repeatables:
            return None
        repeatable = RepeatableJob(
            key=key,
            kind=kind_key(kind),
            pattern=repeat.pattern,
            timezone=repeat.timezone,
            payload=dict(payload or {}),
            options=options,
            next_run_at=next_fire_time(repeat.pattern, now=now or utcnow(), timezone=repeat.timezone),
        )
        self._repeatables[key] = repeatable
        return repeatable

    async def list_repeatable(self, kind: JobKind | str | None = None) -> list[RepeatableJob]:
        wanted = kind_key(kind) if kind is not None else None
        return [r for r in self._repeatables.values() if wanted is None or r.kind == wanted]

    async def remove_repeatable(self, key: str) -> bool:
        return self._repeatables.pop(key, None) is not None

    async def promote_due_repeatables(self, now: datetime | None = None) -> list[Job]:
        self._check_open()
        now = now or utcnow()
        fired: list[Job] = []
        for repeatable in list(self._repeatables.values()):
            if repeatable.next_run_at is None or repeatable.next_run_at > now:
                continue
            job = Job(
                id=str(next(self._ids)),
                kind=repeatable.kind,
                payload=dict(repeatable.payload),
                options=repeatable.options,
                repeat_key=repeatable.key,
            )
            fired.append(await self._push(job))
            repeatable.next_run_at = next_fire_time(repeatable.pattern, now=now, timezone=repeatable.timezone)
        return fired

    async def fetch_next(self, timeout: float | None = None) -> Job | None:
        self._check_open()
        async with self._arrived:
            if not self._waiting:
                if timeout is not None and timeout <= 0:
                    return None
                try:
                    await asyncio.wait_for(self._arrived.wait_for(lambda: bool(self._waiting)), timeout)
                except TimeoutError:
                    return None
            job = self._jobs[self._waiting.popleft()]
        job.status = JobStatus.ACTIVE
        job.attempts_made += 1
        job.started_at = utcnow()
        return job

    async def mark_completed(self, job: Job, return_value: Any = None) -> None:
        job.status = JobStatus.COMPLETED
        job.return_value = return_value
        job.finished_at = utcnow()
        self._retain(job, JobStatus.COMPLETED, job.options.remove_on_complete)

    async def mark_failed(self, job: Job, reason: str) -> None:
        job.status = JobStatus.FAILED
        job.failed_reason = reason
        job.finished_at = utcnow()
        self._retain(job, JobStatus.FAILED, job.options.remove_on_fail)

    def _retain(self, job: Job, status: JobStatus, keep: int) -> None:
        self._jobs[job.id] = job
        history = self._finished[status]
        history.append(job.id)
        while len(history) > max(keep, 0):
            self._jobs.pop(history.popleft(), None)

    async def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def list_jobs(self, status: JobStatus | None = None) -> list[Job]:
        jobs = [j for j in self._jobs.values() if status is None or j.status == status]
        return sorted(jobs, key=lambda j: int(j.id), reverse=True)

    @asynccontextmanager
    async def lock(self, resource: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(resource, asyncio.Lock())
        async with lock:
            yield

    async def close(self) -> None:
        self._closed = True
