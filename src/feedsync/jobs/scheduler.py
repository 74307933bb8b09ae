"""
Job scheduler: registers the recurring download and enqueues process jobs.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from feedsync.config.settings import DEFAULT_FILE_NAME, DEFAULT_SCHEDULE
from feedsync.exceptions import FeedSyncError
from feedsync.jobs.cron import parse_cron
from feedsync.jobs.queue import JobQueue
from feedsync.jobs.types import DEFAULT_RETENTION, Job, JobKind, JobOptions, RepeatOptions, utcnow
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.jobs.scheduler")


class Scheduler:
    """
    Producer side of the pipeline.

    Args:
        queue: Queue the jobs are submitted to
        file_name: Default feed file name carried in job payloads
        retention: Finished jobs of each status kept for inspection
        timezone: IANA timezone the download schedule is evaluated in
    """

    def __init__(
        self,
        queue: JobQueue,
        *,
        file_name: str = DEFAULT_FILE_NAME,
        retention: int = DEFAULT_RETENTION,
        timezone: str | None = None,
    ):
        self.queue = queue
        self.file_name = file_name
        self.retention = retention
        self.timezone = timezone

    def _options(self, repeat: RepeatOptions | None = None) -> JobOptions:
        return JobOptions(remove_on_complete=self.retention, remove_on_fail=self.retention, repeat=repeat)

    async def ensure_recurring_download(
        self, cron_expression: str = DEFAULT_SCHEDULE, file_name: str | None = None
    ) -> bool:
        """
        Register the repeatable download job unless one already exists.

        Safe to call on every start. Returns True if a registration was added.

        Raises:
            CronParseError: If ``cron_expression`` is invalid
            JobQueueError: If the queue cannot be reached
        """
        parse_cron(cron_expression)
        existing = await self.queue.list_repeatable(JobKind.DOWNLOAD)
        if existing:
            logger.info(
                f"Recurring download already registered ({', '.join(r.pattern for r in existing)}); not adding another"
            )
            return False

        added = await self.queue.add_repeatable(
            JobKind.DOWNLOAD,
            {"file_name": file_name or self.file_name},
            self._options(RepeatOptions(cron_expression, self.timezone)),
        )
        if added is None:
            # Another process registered it between the check and the add
            return False
        logger.info(f"Registered recurring download '{cron_expression}', next run at {added.next_run_at}")
        return True

    async def enqueue_download(self, file_name: str | None = None) -> Job:
        """Submit a one-off download job (manual re-run)."""
        job = await self.queue.enqueue(JobKind.DOWNLOAD, {"file_name": file_name or self.file_name}, self._options())
        logger.info(f"Enqueued download job {job.id}")
        return job

    async def enqueue_process(self, file_name: str | None = None) -> Job:
        """Submit a process job for a downloaded feed file."""
        job = await self.queue.enqueue(JobKind.PROCESS, {"file_name": file_name or self.file_name}, self._options())
        logger.info(f"Enqueued process job {job.id} for {file_name or self.file_name}")
        return job

    async def tick(self, now: datetime | None = None) -> list[Job]:
        """Fire every repeatable that is due at ``now``."""
        fired = await self.queue.promote_due_repeatables(now or utcnow())
        for job in fired:
            logger.info(f"Fired repeatable job {job.id} ({job.kind})")
        return fired

    async def run_forever(self, stop_event: asyncio.Event, poll_interval: float = 1.0) -> None:
        """Fire due repeatables every ``poll_interval`` seconds until ``stop_event`` is set."""
        logger.info("Scheduler started")
        while not stop_event.is_set():
            try:
                await self.tick()
            except FeedSyncError:
                logger.exception("Scheduler could not fire due jobs; retrying")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
            except TimeoutError:
                pass
        logger.info("Scheduler stopped")
