"""
Redis-backed job queue.

Lets several worker processes share one queue and its repeatable registrations.

Key layout (``p`` = ``feedsync:<queue name>``)::

    p:id            INCR counter for job ids
    p:jobs          hash  job id -> job JSON
    p:waiting       list  job ids (LPUSH in, BRPOP out)
    p:active        set   job ids being processed
    p:completed     list  finished job ids, newest first, LTRIM'd to retention
    p:failed        list  same for failed jobs
    p:repeat        hash  repeat key -> repeatable JSON (HSETNX keeps it idempotent)
    p:fired:<k>:<t> string claim so one fire time is enqueued once across schedulers
    p:lock:<name>   redis lock
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from feedsync.exceptions import JobQueueError
from feedsync.jobs.cron import next_fire_time
from feedsync.jobs.queue import JobQueue, _require_repeat
from feedsync.jobs.types import Job, JobKind, JobOptions, JobStatus, RepeatableJob, kind_key, utcnow
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.jobs.redis")

# Fire-time claims only need to outlive clock skew between schedulers
_FIRED_CLAIM_TTL_S = 24 * 3600


@contextmanager
def _redis_errors(action: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        raise JobQueueError(f"Redis error while trying to {action}: {e}") from e


class RedisJobQueue(JobQueue):
    """
    Job queue on Redis lists and hashes via ``redis.asyncio``.

    Args:
        url: Redis connection URL (redis://localhost:6379/0)
        name: Queue name; namespaces every key
        lock_timeout_s: Expiry of resource locks, so a crashed worker cannot hold one forever.
            A held lock is extended every third of this while its holder runs.
        client: Pre-built client (tests)
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        name: str = "default",
        *,
        lock_timeout_s: float = 3600.0,
        client: Any = None,
    ):
        self.url = url
        self.name = name
        self.lock_timeout_s = lock_timeout_s
        self.prefix = f"feedsync:{name}"
        self._client = client

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix, *parts))

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = aioredis.from_url(self.url, decode_responses=True)
        return self._client

    async def connect(self) -> None:
        """Verify the broker is reachable."""
        with _redis_errors("connect"):
            await self.client.ping()
        logger.info(f"Connected to Redis queue '{self.name}' at {self.url}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def _save(self, job: Job) -> None:
        await self.client.hset(self._key("jobs"), job.id, json.dumps(job.to_dict(), default=str))

    async def _push(self, job: Job) -> Job:
        with _redis_errors("enqueue job"):
            await self._save(job)
            await self.client.lpush(self._key("waiting"), job.id)
        logger.debug(f"Enqueued job {job.id} ({job.kind})")
        return job

    async def _next_id(self) -> str:
        with _redis_errors("allocate job id"):
            return str(await self.client.incr(self._key("id")))

    async def enqueue(
        self, kind: JobKind | str, payload: dict[str, Any] | None = None, options: JobOptions | None = None
    ) -> Job:
        job = Job(
            id=await self._next_id(),
            kind=kind_key(kind),
            payload=dict(payload or {}),
            options=options or JobOptions(),
        )
        return await self._push(job)

    async def fetch_next(self, timeout: float | None = None) -> Job | None:
        waiting = self._key("waiting")
        with _redis_errors("fetch job"):
            if timeout == 0:
                job_id = await self.client.rpop(waiting)
            else:
                popped = await self.client.brpop([waiting], timeout=timeout or 0)
                job_id = popped[1] if popped else None
            if job_id is None:
                return None
            job = await self.get_job(job_id)
            if job is None:
                logger.warning(f"Job {job_id} was dequeued but its data is gone")
                return None
            job.status = JobStatus.ACTIVE
            job.attempts_made += 1
            job.started_at = utcnow()
            await self._save(job)
            await self.client.sadd(self._key("active"), job.id)
        return job

    async def _finish(self, job: Job, status: JobStatus, keep: int) -> None:
        history = self._key(status.value)
        with _redis_errors(f"mark job {job.id} {status.value}"):
            await self._save(job)
            await self.client.srem(self._key("active"), job.id)
            await self.client.lpush(history, job.id)
            expired = await self.client.lrange(history, max(keep, 0), -1)
            if expired:
                await self.client.hdel(self._key("jobs"), *expired)
            await self.client.ltrim(history, 0, max(keep, 0) - 1)

    async def mark_completed(self, job: Job, return_value: Any = None) -> None:
        job.status = JobStatus.COMPLETED
        job.return_value = return_value
        job.finished_at = utcnow()
        await self._finish(job, JobStatus.COMPLETED, job.options.remove_on_complete)

    async def mark_failed(self, job: Job, reason: str) -> None:
        job.status = JobStatus.FAILED
        job.failed_reason = reason
        job.finished_at = utcnow()
        await self._finish(job, JobStatus.FAILED, job.options.remove_on_fail)

    async def get_job(self, job_id: str) -> Job | None:
        with _redis_errors(f"load job {job_id}"):
            raw = await self.client.hget(self._key("jobs"), job_id)
        return Job.from_dict(json.loads(raw)) if raw else None

    async def list_jobs(self, status: JobStatus | None = None) -> list[Job]:
        with _redis_errors("list jobs"):
            raw = await self.client.hgetall(self._key("jobs"))
        jobs = [Job.from_dict(json.loads(v)) for v in raw.values()]
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return sorted(jobs, key=lambda j: int(j.id), reverse=True)

    # ------------------------------------------------------------------
    # Repeatables
    # ------------------------------------------------------------------

    async def add_repeatable(
        self,
        kind: JobKind | str,
        payload: dict[str, Any] | None = None,
        options: JobOptions | None = None,
        *,
        now: datetime | None = None,
    ) -> RepeatableJob | None:
        options = _require_repeat(options)
        repeat = options.repeat
        assert repeat is not None
        repeatable = RepeatableJob(
            key=RepeatableJob.make_key(kind, repeat),
            kind=kind_key(kind),
            pattern=repeat.pattern,
            timezone=repeat.timezone,
            payload=dict(payload or {}),
            options=options,
            next_run_at=next_fire_time(repeat.pattern, now=now or utcnow(), timezone=repeat.timezone),
        )
        with _redis_errors("register repeatable job"):
            added = await self.client.hsetnx(
                self._key("repeat"), repeatable.key, json.dumps(repeatable.to_dict(), default=str)
            )
        return repeatable if added else None

    async def list_repeatable(self, kind: JobKind | str | None = None) -> list[RepeatableJob]:
        with _redis_errors("list repeatable jobs"):
            raw = await self.client.hgetall(self._key("repeat"))
        repeatables = [RepeatableJob.from_dict(json.loads(v)) for v in raw.values()]
        if kind is not None:
            repeatables = [r for r in repeatables if r.kind == kind_key(kind)]
        return repeatables

    async def remove_repeatable(self, key: str) -> bool:
        with _redis_errors("remove repeatable job"):
            return bool(await self.client.hdel(self._key("repeat"), key))

    async def promote_due_repeatables(self, now: datetime | None = None) -> list[Job]:
        now = now or utcnow()
        fired: list[Job] = []
        for repeatable in await self.list_repeatable():
            due_at = repeatable.next_run_at
            if due_at is None or due_at > now:
                continue
            claim = self._key("fired", repeatable.key, str(int(due_at.timestamp())))
            with _redis_errors("claim repeatable fire time"):
                claimed = await self.client.set(claim, "1", nx=True, ex=_FIRED_CLAIM_TTL_S)
            if claimed:
                job = Job(
                    id=await self._next_id(),
                    kind=repeatable.kind,
                    payload=dict(repeatable.payload),
                    options=repeatable.options,
                    repeat_key=repeatable.key,
                )
                fired.append(await self._push(job))
            repeatable.next_run_at = next_fire_time(repeatable.pattern, now=now, timezone=repeatable.timezone)
            with _redis_errors("reschedule repeatable job"):
                await self.client.hset(
                    self._key("repeat"), repeatable.key, json.dumps(repeatable.to_dict(), default=str)
                )
        return fired

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def lock(self, resource: str) -> AsyncIterator[None]:
        lock = self.client.lock(self._key("lock", resource), timeout=self.lock_timeout_s)
        with _redis_errors(f"acquire lock '{resource}'"):
            await lock.acquire()
        renewal = asyncio.create_task(self._keep_lock(lock, resource))
        try:
            yield
        finally:
            renewal.cancel()
            await asyncio.gather(renewal, return_exceptions=True)
            try:
                await lock.release()
            except RedisError as e:
                # Expired while held; the work under it has already finished
                logger.warning(f"Lock '{resource}' could not be released cleanly: {e}")

    async def _keep_lock(self, lock: Any, resource: str) -> None:
        """Reset the lock's expiry every third of ``lock_timeout_s`` while it is held."""
        while True:
            await asyncio.sleep(self.lock_timeout_s / 3)
            try:
                await lock.reacquire()
            except RedisError as e:
                logger.warning(f"Lock '{resource}' could not be extended and may expire: {e}")
                return
