"""
Feed downloader: fetch one named file from the remote host into local staging.

The file is written to ``<work_dir>/<file_name>.part`` and renamed into place
only once the transfer is complete and its size matches what the server
reported, so the process stage never sees a partial feed.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from feedsync.config.settings import SourceSettings
from feedsync.connections import open_remote
from feedsync.exceptions import TransferError
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.feed.downloader")


@dataclass(frozen=True)
class DownloadResult:
    local_path: Path
    size: int
    elapsed_s: float


class FeedDownloader:
    """Downloads feed files from one configured remote source."""

    def __init__(self, source: SourceSettings, work_dir: str | Path):
        self.source = source
        self.work_dir = Path(work_dir)

    def _connection_config(self) -> dict[str, Any]:
        return {
            "type": self.source.protocol,
            "config": {
                "host": self.source.host,
                "port": self.source.effective_port,
                "username": self.source.username,
                "password": self.source.password,
                "secure": self.source.secure,
                "timeout_s": self.source.timeout_s,
                "private_key_path": self.source.private_key_path,
                "verbose": self.source.verbose,
            },
        }

    def local_path(self, file_name: str) -> Path:
        return self.work_dir / _safe_name(file_name)

    def download(self, file_name: str) -> DownloadResult:
        """
        Download ``file_name`` from the source directory (blocking).

        Raises:
            FeedConnectionError: If the host is unreachable or rejects the login
            TransferError: If the file is missing or arrives truncated
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)
        local_path = self.local_path(file_name)
        tmp_path = local_path.with_name(local_path.name + ".part")
        started = time.monotonic()

        logger.info(f"Downloading {self.source.protocol}://{self.source.host}/{self.source.directory}/{file_name}")
        try:
            with open_remote(self.source.host, self._connection_config()) as remote:
                if self.source.directory:
                    remote.chdir(self.source.directory)
                expected = remote.size(file_name)
                written = remote.retrieve(file_name, tmp_path)
            if expected is not None and written != expected:
                raise TransferError(
                    f"Incomplete transfer of '{file_name}': got {written} of {expected} bytes",
                    file_name=file_name,
                    expected_size=expected,
                    actual_size=written,
                )
            os.replace(tmp_path, local_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        elapsed = time.monotonic() - started
        logger.info(f"Downloaded {file_name} ({written} bytes) in {elapsed:.2f}s")
        return DownloadResult(local_path=local_path, size=written, elapsed_s=elapsed)


def download(
    host: str,
    credentials: dict[str, Any] | None,
    remote_dir: str,
    file_name: str,
    *,
    work_dir: str | Path,
    protocol: str = "ftp",
) -> DownloadResult:
    """
    One-shot form of ``FeedDownloader.download``.

    ``credentials`` may carry ``username``, ``password``, ``port``, ``secure``,
    ``timeout_s`` and ``private_key_path``.
    """
    creds = credentials or {}
    source = SourceSettings(
        host=host,
        protocol=protocol,
        port=creds.get("port"),
        username=creds.get("username"),
        password=creds.get("password"),
        directory=remote_dir,
        secure=bool(creds.get("secure", False)),
        timeout_s=float(creds.get("timeout_s", 30.0)),
        private_key_path=creds.get("private_key_path"),
    )
    return FeedDownloader(source, work_dir).download(file_name)


def _safe_name(file_name: str) -> str:
    # Local staging never leaves work_dir
    name = Path(file_name).name
    if not name or name in (".", ".."):
        raise TransferError(f"Invalid feed file name {file_name!r}", file_name=file_name)
    return name
