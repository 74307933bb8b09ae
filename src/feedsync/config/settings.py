"""
Typed settings derived from a loaded Config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from feedsync.config.loader import Config
from feedsync.config.resolver import is_unresolved
from feedsync.exceptions import ConfigurationError

DEFAULT_FILE_NAME = "TobaccoData.xml"
DEFAULT_SCHEDULE = "0 */12 * * *"
DEFAULT_RETENTION = 30


@dataclass(frozen=True)
class SourceSettings:
    """Remote file host the feed is fetched from."""

    host: str
    protocol: str = "ftp"
    port: int | None = None
    username: str | None = None
    password: str | None = None
    directory: str = "TOBACCO"
    secure: bool = False
    timeout_s: float = 30.0
    private_key_path: str | None = None
    verbose: bool = False

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return 22 if self.protocol == "sftp" else 21


@dataclass(frozen=True)
class FeedSettings:
    file_name: str = DEFAULT_FILE_NAME
    schedule: str = DEFAULT_SCHEDULE
    timezone: str | None = None
    work_dir: str = ".feedsync"
    chunk_size: int = 64 * 1024


@dataclass(frozen=True)
class QueueSettings:
    backend: str = "memory"
    url: str = "redis://localhost:6379/0"
    name: str = "default"
    retention: int = DEFAULT_RETENTION
    lock_timeout_s: float = 3600.0


@dataclass(frozen=True)
class WorkerSettings:
    concurrency: int = 1
    high_water: int = 16
    low_water: int = 4
    poll_interval_s: float = 1.0


@dataclass(frozen=True)
class Settings:
    source: SourceSettings
    feed: FeedSettings = field(default_factory=FeedSettings)
    queue: QueueSettings = field(default_factory=QueueSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    catalog_path: str = "catalog.duckdb"

    @classmethod
    def from_config(cls, config: Config) -> Settings:
        """Build settings from a Config, validating required keys and enums."""
        src = config.section("source")
        host = src.get("host")
        if not host or is_unresolved(host):
            raise ConfigurationError("Configuration 'source.host' is required")

        protocol = str(src.get("protocol", "ftp")).lower()
        if protocol not in ("ftp", "sftp"):
            raise ConfigurationError(f"Unsupported source protocol '{protocol}'. Supported: ftp, sftp")

        source = SourceSettings(
            host=str(host),
            protocol=protocol,
            port=_opt_int(src.get("port")),
            username=src.get("username"),
            password=src.get("password"),
            directory=str(src.get("directory", "TOBACCO")),
            secure=bool(src.get("secure", False)),
            timeout_s=float(src.get("timeout_s", 30.0)),
            private_key_path=src.get("private_key_path"),
            verbose=bool(src.get("verbose", False)),
        )

        feed_cfg = config.section("feed")
        feed = FeedSettings(
            file_name=str(feed_cfg.get("file_name", DEFAULT_FILE_NAME)),
            schedule=str(feed_cfg.get("schedule", DEFAULT_SCHEDULE)),
            timezone=feed_cfg.get("timezone"),
            work_dir=str(feed_cfg.get("work_dir", ".feedsync")),
            chunk_size=int(feed_cfg.get("chunk_size", 64 * 1024)),
        )

        queue_cfg = config.section("queue")
        backend = str(queue_cfg.get("backend", "memory")).lower()
        if backend not in ("memory", "redis"):
            raise ConfigurationError(f"Unsupported queue backend '{backend}'. Supported: memory, redis")
        queue = QueueSettings(
            backend=backend,
            url=str(queue_cfg.get("url", "redis://localhost:6379/0")),
            name=str(queue_cfg.get("name", "default")),
            retention=int(queue_cfg.get("retention", DEFAULT_RETENTION)),
            lock_timeout_s=float(queue_cfg.get("lock_timeout_s", 3600.0)),
        )

        worker_cfg = config.section("worker")
        worker = WorkerSettings(
            concurrency=max(1, int(worker_cfg.get("concurrency", 1))),
            high_water=int(worker_cfg.get("high_water", 16)),
            low_water=int(worker_cfg.get("low_water", 4)),
            poll_interval_s=float(worker_cfg.get("poll_interval_s", 1.0)),
        )
        if not 0 <= worker.low_water < worker.high_water:
            raise ConfigurationError(
                f"worker.low_water ({worker.low_water}) must be >= 0 and below worker.high_water ({worker.high_water})"
            )

        return cls(
            source=source,
            feed=feed,
            queue=queue,
            worker=worker,
            catalog_path=str(config.get("catalog.path", "catalog.duckdb")),
        )


def _opt_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    return int(value)
