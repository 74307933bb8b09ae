"""
feedsync - scheduled tobacco catalog feed download and reconciliation.

Fetches the daily catalog export from a remote FTP/SFTP host, streams it into
normalized feed records and reconciles them into the product catalog.
"""

__version__ = "0.1.0"

from feedsync.catalog.models import Barcode, FeedRecord, Product
from feedsync.catalog.store import CatalogStore, DuckDBCatalogStore
from feedsync.config.loader import Config, load_config
from feedsync.config.settings import Settings
from feedsync.exceptions import (
    CatalogStoreError,
    ConfigurationError,
    CronParseError,
    DecodeError,
    FeedConnectionError,
    FeedSyncError,
    JobQueueError,
    ReconciliationError,
    TransferError,
    UnknownJobKindError,
)
from feedsync.feed.decoder import decode_feed
from feedsync.feed.downloader import FeedDownloader, download
from feedsync.jobs.pipeline import FeedPipeline
from feedsync.jobs.queue import InMemoryJobQueue, JobQueue
from feedsync.jobs.redis_queue import RedisJobQueue
from feedsync.jobs.scheduler import Scheduler
from feedsync.jobs.types import Job, JobKind, JobOptions, JobStatus
from feedsync.jobs.worker import Worker
from feedsync.reconcile.engine import ReconcileOutcome, ReconcileSummary, ReconciliationEngine

__all__ = [
    "__version__",
    # Models
    "Barcode",
    "FeedRecord",
    "Product",
    # Catalog
    "CatalogStore",
    "DuckDBCatalogStore",
    # Config
    "Config",
    "load_config",
    "Settings",
    # Feed
    "decode_feed",
    "download",
    "FeedDownloader",
    # Jobs
    "FeedPipeline",
    "InMemoryJobQueue",
    "Job",
    "JobKind",
    "JobOptions",
    "JobQueue",
    "JobStatus",
    "RedisJobQueue",
    "Scheduler",
    "Worker",
    # Reconciliation
    "ReconcileOutcome",
    "ReconcileSummary",
    "ReconciliationEngine",
    # Exceptions
    "FeedSyncError",
    "ConfigurationError",
    "CronParseError",
    "FeedConnectionError",
    "TransferError",
    "DecodeError",
    "ReconciliationError",
    "CatalogStoreError",
    "JobQueueError",
    "UnknownJobKindError",
]
