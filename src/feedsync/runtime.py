"""
feedsync startup initialization.

Builds the components in dependency order:
1. Config (with validation into typed Settings)
2. Logging
3. Job queue (memory or Redis)
4. Catalog store
5. Pipeline (downloader, scheduler, engine)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from feedsync.catalog.store import DuckDBCatalogStore
from feedsync.config.loader import Config, load_config
from feedsync.config.settings import Settings
from feedsync.jobs.pipeline import FeedPipeline
from feedsync.jobs.queue import InMemoryJobQueue, JobQueue
from feedsync.jobs.redis_queue import RedisJobQueue
from feedsync.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("feedsync.runtime")


@dataclass
class Runtime:
    config: Config
    settings: Settings
    queue: JobQueue
    store: DuckDBCatalogStore
    pipeline: FeedPipeline

    async def close(self) -> None:
        await self.queue.close()
        self.store.close()


def build_queue(settings: Settings) -> JobQueue:
    if settings.queue.backend == "redis":
        return RedisJobQueue(settings.queue.url, settings.queue.name, lock_timeout_s=settings.queue.lock_timeout_s)
    return InMemoryJobQueue(settings.queue.name)


def initialize(project_dir: Path, env: str | None = None, verbose: bool = False) -> Runtime:
    """
    Load configuration and build every runtime component.

    Raises:
        ConfigurationError: If the configuration is missing or invalid
    """
    project_dir = Path(project_dir)
    env = env or os.environ.get("FEEDSYNC_ENV", "dev")

    config = load_config(project_dir, env=env)
    settings = Settings.from_config(config)

    logging_config = dict(config.data)
    if verbose:
        logging_config["logging"] = {**(config.get("logging") or {}), "level": "DEBUG"}
    setup_logging_from_config(logging_config, project_dir)

    catalog_path = settings.catalog_path
    if catalog_path != ":memory:" and not Path(catalog_path).is_absolute():
        catalog_path = str(project_dir / catalog_path)
    store = DuckDBCatalogStore(catalog_path)
    store.initialize()

    queue = build_queue(settings)
    if not Path(settings.feed.work_dir).is_absolute():
        settings = replace(settings, feed=replace(settings.feed, work_dir=str(project_dir / settings.feed.work_dir)))

    pipeline = FeedPipeline(settings, queue, store)
    logger.debug(f"Initialized feedsync (env={env}, queue={settings.queue.backend}, catalog={catalog_path})")
    return Runtime(config=config, settings=settings, queue=queue, store=store, pipeline=pipeline)

