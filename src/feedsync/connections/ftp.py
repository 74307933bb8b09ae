"""
FTP connection for feed downloads.

Wraps stdlib ``ftplib`` with the same lazy connect / close shape as the SFTP
wrapper so the downloader can treat both protocols alike.
"""

from __future__ import annotations

import ftplib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from feedsync.exceptions import FeedConnectionError, TransferError
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.connections.ftp")


@dataclass(frozen=True)
class FTPConfig:
    host: str
    port: int = 21
    username: str | None = None
    password: str | None = None
    # Explicit FTPS (AUTH TLS) with a protected data channel
    secure: bool = False
    timeout_s: float = 30.0
    verbose: bool = False


class FTPConnection:
    """
    Minimal FTP client wrapper: change directory, stat and download one file.
    """

    def __init__(self, name: str, config: dict[str, Any]):
        self.name = name
        self.config = config
        self._client: ftplib.FTP | None = None

    def _parse_config(self) -> FTPConfig:
        cfg = self.config.get("config", {}) if isinstance(self.config, dict) else {}
        return FTPConfig(
            host=cfg.get("host", ""),
            port=int(cfg.get("port") or 21),
            username=cfg.get("username"),
            password=cfg.get("password"),
            secure=bool(cfg.get("secure", False)),
            timeout_s=float(cfg.get("timeout_s", 30.0)),
            verbose=bool(cfg.get("verbose", False)),
        )

    @property
    def host(self) -> str:
        return self._parse_config().host

    def connect(self) -> ftplib.FTP:
        """Connect and log in (lazy); return the live ``ftplib.FTP`` client."""
        if self._client is not None:
            return self._client

        cfg = self._parse_config()
        if not cfg.host:
            raise FeedConnectionError(f"FTP connection '{self.name}' missing host")

        client: ftplib.FTP = ftplib.FTP_TLS(timeout=cfg.timeout_s) if cfg.secure else ftplib.FTP(timeout=cfg.timeout_s)
        client.set_debuglevel(1 if cfg.verbose else 0)
        try:
            client.connect(cfg.host, cfg.port)
            # ftplib logs in anonymously when no user is given
            client.login(user=cfg.username or "", passwd=cfg.password or "")
            if isinstance(client, ftplib.FTP_TLS):
                client.prot_p()
        except ftplib.error_perm as e:
            _quiet_close(client)
            raise FeedConnectionError(f"FTP login to {cfg.host} rejected: {e}", host=cfg.host) from e
        except (OSError, EOFError, ftplib.Error) as e:
            _quiet_close(client)
            raise FeedConnectionError(f"Cannot connect to FTP host {cfg.host}:{cfg.port}: {e}", host=cfg.host) from e

        logger.debug(f"Connected to ftp://{cfg.host}:{cfg.port}")
        self._client = client
        return client

    def chdir(self, directory: str) -> None:
        client = self.connect()
        try:
            client.cwd(directory)
        except ftplib.error_perm as e:
            raise TransferError(f"Remote directory '{directory}' not accessible: {e}") from e
        except (OSError, EOFError) as e:
            raise FeedConnectionError(f"FTP connection lost: {e}", host=self.host) from e

    def size(self, file_name: str) -> int | None:
        """Remote file size in bytes, or None when the server does not report one."""
        client = self.connect()
        try:
            client.voidcmd("TYPE I")
            size = client.size(file_name)
        except ftplib.error_perm as e:
            # 550 is "file unavailable"; other 5xx (e.g. SIZE unsupported) just mean unknown size
            if str(e).startswith("550"):
                raise TransferError(f"Remote file '{file_name}' not found", file_name=file_name) from e
            return None
        except (OSError, EOFError) as e:
            raise FeedConnectionError(f"FTP connection lost: {e}", host=self.host) from e
        return int(size) if size is not None else None

    def retrieve(self, file_name: str, local_path: str | Path) -> int:
        """Download ``file_name`` from the current directory; return bytes written."""
        client = self.connect()
        written = 0
        with open(local_path, "wb") as f:

            def write(block: bytes) -> None:
                nonlocal written
                f.write(block)
                written += len(block)

            try:
                client.retrbinary(f"RETR {file_name}", write)
            except ftplib.error_perm as e:
                raise TransferError(f"Remote file '{file_name}' could not be retrieved: {e}", file_name=file_name) from e
            except (OSError, EOFError, ftplib.Error) as e:
                raise TransferError(
                    f"Transfer of '{file_name}' interrupted: {e}", file_name=file_name, actual_size=written
                ) from e
        return written

    def close(self) -> None:
        """Send QUIT (best effort) and drop the socket."""
        try:
            if self._client is not None:
                try:
                    self._client.quit()
                except (OSError, EOFError, ftplib.Error):
                    self._client.close()
        finally:
            self._client = None

    def __enter__(self) -> FTPConnection:
        self.connect()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()


def _quiet_close(client: ftplib.FTP) -> None:
    try:
        client.close()
    except OSError:
        pass
