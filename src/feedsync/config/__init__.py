"""
Configuration loading and typed settings.
"""

from feedsync.config.loader import Config, load_config
from feedsync.config.resolver import resolve_config
from feedsync.config.settings import (
    FeedSettings,
    QueueSettings,
    Settings,
    SourceSettings,
    WorkerSettings,
)

__all__ = [
    "Config",
    "load_config",
    "resolve_config",
    "Settings",
    "SourceSettings",
    "FeedSettings",
    "QueueSettings",
    "WorkerSettings",
]
