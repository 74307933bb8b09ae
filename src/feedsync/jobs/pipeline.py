"""
Download and process job handlers.

Download fetches the feed into local staging and, on success, enqueues the
process job. Process decodes the staged file and reconciles it into the
catalog, then removes the file whether or not reconciliation succeeded.

Both stages hold the queue lock ``feed:<file name>`` while they touch the
local file, so a download can never overwrite a file that is being processed
and two runs never interleave on the same name.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any

from feedsync.catalog.store import CatalogStore
from feedsync.config.settings import Settings
from feedsync.exceptions import TransferError
from feedsync.feed.decoder import decode_feed
from feedsync.feed.downloader import FeedDownloader
from feedsync.jobs.queue import JobQueue
from feedsync.jobs.scheduler import Scheduler
from feedsync.jobs.types import Job, JobKind
from feedsync.jobs.worker import Handler
from feedsync.reconcile.engine import ReconcileSummary, ReconciliationEngine
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.jobs.pipeline")


class FeedPipeline:
    """Wires downloader, decoder and reconciliation engine into job handlers."""

    def __init__(
        self,
        settings: Settings,
        queue: JobQueue,
        store: CatalogStore,
        downloader: FeedDownloader | None = None,
        scheduler: Scheduler | None = None,
    ):
        self.settings = settings
        self.queue = queue
        self.store = store
        self.downloader = downloader or FeedDownloader(settings.source, settings.feed.work_dir)
        self.scheduler = scheduler or Scheduler(
            queue,
            file_name=settings.feed.file_name,
            retention=settings.queue.retention,
            timezone=settings.feed.timezone,
        )
        self.engine = ReconciliationEngine(store)

    def _file_name(self, job: Job | None) -> str:
        if job is not None and job.payload.get("file_name"):
            return str(job.payload["file_name"])
        return self.settings.feed.file_name

    def _lock(self, file_name: str) -> Any:
        return self.queue.lock(f"feed:{file_name}")

    async def _download(self, file_name: str) -> dict[str, Any]:
        result = await asyncio.to_thread(self.downloader.download, file_name)
        return {"file_name": file_name, "local_path": str(result.local_path), "size": result.size}

    async def handle_download(self, job: Job) -> dict[str, Any]:
        file_name = self._file_name(job)
        async with self._lock(file_name):
            outcome = await self._download(file_name)
        try:
            process_job = await self.scheduler.enqueue_process(file_name)
        except BaseException:
            # Nothing will ever process the staged file
            self.downloader.local_path(file_name).unlink(missing_ok=True)
            raise
        outcome["process_job_id"] = process_job.id
        return outcome

    async def handle_process(self, job: Job) -> dict[str, Any]:
        file_name = self._file_name(job)
        async with self._lock(file_name):
            summary = await self.process_file(self.downloader.local_path(file_name), keep_file=False)
        return summary.to_dict()

    async def process_file(self, path: str | Path, *, keep_file: bool = True) -> ReconcileSummary:
        """
        Decode ``path`` and reconcile every record into the catalog.

        Unless ``keep_file`` is set the file is deleted afterwards, on success
        and on failure alike.

        Raises:
            TransferError: If the file does not exist
            DecodeError: If the feed is malformed
            ReconciliationError: If a record cannot be applied; earlier records stay applied
        """
        path = Path(path)
        started = time.monotonic()
        try:
            if not path.is_file():
                raise TransferError(f"Feed file {path} not found", file_name=path.name)
            worker = self.settings.worker
            summary = await self.engine.reconcile_all(
                decode_feed(path, self.settings.feed.chunk_size),
                high_water=worker.high_water,
                low_water=worker.low_water,
            )
        finally:
            if not keep_file:
                path.unlink(missing_ok=True)
                logger.debug(f"Removed feed file {path}")
        logger.info(f"Processed {path.name} in {time.monotonic() - started:.2f}s: {summary.to_dict()}")
        return summary

    def handlers(self) -> dict[JobKind, Handler]:
        return {
            JobKind.DOWNLOAD: self.handle_download,
            JobKind.PROCESS: self.handle_process,
        }

    async def run_once(self, file_name: str | None = None) -> dict[str, Any]:
        """Download and reconcile inline, without going through the queue."""
        file_name = file_name or self.settings.feed.file_name
        async with self._lock(file_name):
            download = await self._download(file_name)
            summary = await self.process_file(download["local_path"], keep_file=False)
        return {"download": download, "reconcile": summary.to_dict()}
