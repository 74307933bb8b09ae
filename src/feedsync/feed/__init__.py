"""
Feed acquisition and decoding.
"""

from feedsync.feed.buffer import BoundedRecordBuffer, BufferStats, run_pipeline
from feedsync.feed.decoder import decode_feed
from feedsync.feed.downloader import DownloadResult, FeedDownloader, download

__all__ = [
    "BoundedRecordBuffer",
    "BufferStats",
    "run_pipeline",
    "decode_feed",
    "DownloadResult",
    "FeedDownloader",
    "download",
]
