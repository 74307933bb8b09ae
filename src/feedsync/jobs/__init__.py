"""
Job scheduling, queueing and execution.
"""

from feedsync.jobs.cron import CronSchedule, next_fire_time, parse_cron
from feedsync.jobs.pipeline import FeedPipeline
from feedsync.jobs.queue import InMemoryJobQueue, JobQueue
from feedsync.jobs.redis_queue import RedisJobQueue
from feedsync.jobs.scheduler import Scheduler
from feedsync.jobs.types import Job, JobKind, JobOptions, JobStatus, RepeatableJob, RepeatOptions
from feedsync.jobs.worker import Worker

__all__ = [
    "CronSchedule",
    "next_fire_time",
    "parse_cron",
    "FeedPipeline",
    "InMemoryJobQueue",
    "JobQueue",
    "RedisJobQueue",
    "Scheduler",
    "Job",
    "JobKind",
    "JobOptions",
    "JobStatus",
    "RepeatableJob",
    "RepeatOptions",
    "Worker",
]
