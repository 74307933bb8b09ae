"""
Worker runtime: takes jobs off the queue and dispatches them by kind.

Jobs are attempted once. A handler error marks the job failed and is
reported to ``failed`` observers; the worker itself keeps running.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from feedsync.exceptions import FeedSyncError, UnknownJobKindError
from feedsync.jobs.queue import JobQueue
from feedsync.jobs.types import Job, JobKind, kind_key
from feedsync.observability import add_correlation_id, log_job_end, log_job_start
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.jobs.worker")

Handler = Callable[[Job], Awaitable[Any]]
Observer = Callable[..., Any]

EVENTS = ("completed", "failed")


class Worker:
    """
    Consumer side of the pipeline.

    Args:
        queue: Queue to take jobs from
        handlers: Job kind -> async handler; the handler's return value is stored on the job
        concurrency: Jobs processed at the same time
        poll_interval_s: How long one fetch waits for a job before checking for shutdown
    """

    def __init__(
        self,
        queue: JobQueue,
        handlers: Mapping[JobKind | str, Handler],
        *,
        concurrency: int = 1,
        poll_interval_s: float = 1.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.queue = queue
        self.handlers: dict[str, Handler] = {kind_key(k): h for k, h in handlers.items()}
        self.concurrency = concurrency
        self.poll_interval_s = poll_interval_s
        self._observers: dict[str, list[Observer]] = {event: [] for event in EVENTS}

    def on(self, event: str, callback: Observer) -> None:
        """
        Subscribe to job outcomes.

        ``completed`` callbacks get ``(job, return_value)``; ``failed`` callbacks
        get ``(job, error)``. Callbacks may be plain functions or coroutines.
        """
        if event not in self._observers:
            raise ValueError(f"Unknown worker event '{event}'. Supported: {', '.join(EVENTS)}")
        self._observers[event].append(callback)

    async def _emit(self, event: str, *args: Any) -> None:
        for callback in self._observers[event]:
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Worker '{event}' observer {callback!r} raised")

    async def execute(self, job: Job) -> None:
        """Run one already-fetched job and record its outcome on the queue."""
        started = time.monotonic()
        with add_correlation_id(job.id):
            log_job_start(job.id, job.kind)
            try:
                handler = self.handlers.get(job.kind)
                if handler is None:
                    raise UnknownJobKindError(job.kind, job_id=job.id)
                result = await handler(job)
            except asyncio.CancelledError:
                await self.queue.mark_failed(job, "Worker stopped while the job was running")
                raise
            except Exception as e:
                log_job_end(job.id, job.kind, False, time.monotonic() - started, e)
                await self.queue.mark_failed(job, str(e))
                await self._emit("failed", job, e)
                return

            log_job_end(job.id, job.kind, True, time.monotonic() - started)
            await self.queue.mark_completed(job, result)
            await self._emit("completed", job, result)

    async def process_one(self, timeout: float | None = 0) -> Job | None:
        """Fetch and run a single job. Returns it, or None if the queue had nothing within ``timeout``."""
        job = await self.queue.fetch_next(timeout)
        if job is None:
            return None
        await self.execute(job)
        return job

    async def drain(self) -> int:
        """Run jobs until the queue is empty, including jobs enqueued by the ones run."""
        count = 0
        while await self.process_one(timeout=0) is not None:
            count += 1
        return count

    async def _loop(self, slot: int, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.process_one(timeout=self.poll_interval_s)
            except FeedSyncError:
                # Queue unreachable; keep the slot alive and try again
                logger.exception(f"Worker slot {slot} could not take a job")
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval_s)
                except TimeoutError:
                    pass
        logger.debug(f"Worker slot {slot} stopped")

    async def run(self, stop_event: asyncio.Event) -> None:
        """Process jobs with ``concurrency`` parallel slots until ``stop_event`` is set."""
        logger.info(f"Worker started on queue '{self.queue.name}' (concurrency={self.concurrency})")
        await asyncio.gather(*(self._loop(slot, stop_event) for slot in range(self.concurrency)))
        logger.info("Worker stopped")
