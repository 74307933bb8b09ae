"""
SFTP connection for feed downloads.

Same surface as ``FTPConnection`` (chdir / size / retrieve) on top of paramiko.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import paramiko

from feedsync.exceptions import FeedConnectionError, TransferError
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.connections.sftp")


@dataclass(frozen=True)
class SFTPConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    private_key_path: str | None = None
    private_key_passphrase: str | None = None
    connect_timeout_s: float = 15.0


class SFTPConnection:
    """
    Minimal SFTP client wrapper for fetching the feed file.
    """

    def __init__(self, name: str, config: dict[str, Any]):
        self.name = name
        self.config = config
        self._transport: paramiko.Transport | None = None
        self._client: paramiko.SFTPClient | None = None

    def _parse_config(self) -> SFTPConfig:
        cfg = self.config.get("config", {}) if isinstance(self.config, dict) else {}
        return SFTPConfig(
            host=cfg.get("host", ""),
            port=int(cfg.get("port") or 22),
            username=cfg.get("username"),
            password=cfg.get("password"),
            private_key_path=cfg.get("private_key_path"),
            private_key_passphrase=cfg.get("private_key_passphrase"),
            connect_timeout_s=float(cfg.get("timeout_s", cfg.get("connect_timeout_s", 15.0))),
        )

    @property
    def host(self) -> str:
        return self._parse_config().host

    def _load_key(self, cfg: SFTPConfig) -> paramiko.PKey | None:
        if not cfg.private_key_path:
            return None
        # Try common key types; paramiko raises if incompatible.
        try:
            return paramiko.RSAKey.from_private_key_file(cfg.private_key_path, password=cfg.private_key_passphrase)
        except paramiko.SSHException:
            return paramiko.Ed25519Key.from_private_key_file(
                cfg.private_key_path, password=cfg.private_key_passphrase
            )

    def connect(self) -> paramiko.SFTPClient:
        """Connect (lazy) and return a live ``paramiko.SFTPClient``."""
        if self._client is not None:
            return self._client

        cfg = self._parse_config()
        if not cfg.host:
            raise FeedConnectionError(f"SFTP connection '{self.name}' missing host")

        try:
            transport = paramiko.Transport((cfg.host, cfg.port))
        except (OSError, paramiko.SSHException) as e:
            raise FeedConnectionError(f"Cannot connect to SFTP host {cfg.host}:{cfg.port}: {e}", host=cfg.host) from e
        transport.banner_timeout = cfg.connect_timeout_s
        transport.auth_timeout = cfg.connect_timeout_s

        try:
            transport.connect(username=cfg.username, password=cfg.password, pkey=self._load_key(cfg))
            client = paramiko.SFTPClient.from_transport(transport)
        except paramiko.AuthenticationException as e:
            transport.close()
            raise FeedConnectionError(f"SFTP login to {cfg.host} rejected: {e}", host=cfg.host) from e
        except (OSError, paramiko.SSHException) as e:
            transport.close()
            raise FeedConnectionError(f"Cannot open SFTP session on {cfg.host}: {e}", host=cfg.host) from e
        if client is None:
            transport.close()
            raise FeedConnectionError(f"Cannot open SFTP session on {cfg.host}", host=cfg.host)

        logger.debug(f"Connected to sftp://{cfg.host}:{cfg.port}")
        self._transport = transport
        self._client = client
        return client

    def chdir(self, directory: str) -> None:
        client = self.connect()
        try:
            client.chdir(directory)
        except OSError as e:
            raise TransferError(f"Remote directory '{directory}' not accessible: {e}") from e

    def size(self, file_name: str) -> int | None:
        client = self.connect()
        try:
            attrs = client.stat(file_name)
        except FileNotFoundError as e:
            raise TransferError(f"Remote file '{file_name}' not found", file_name=file_name) from e
        except OSError as e:
            raise TransferError(f"Cannot stat remote file '{file_name}': {e}", file_name=file_name) from e
        return int(attrs.st_size) if attrs.st_size is not None else None

    def retrieve(self, file_name: str, local_path: str | Path) -> int:
        client = self.connect()
        try:
            client.get(file_name, str(local_path))
        except FileNotFoundError as e:
            raise TransferError(f"Remote file '{file_name}' not found", file_name=file_name) from e
        except (OSError, paramiko.SSHException) as e:
            raise TransferError(f"Transfer of '{file_name}' interrupted: {e}", file_name=file_name) from e
        return Path(local_path).stat().st_size

    def close(self) -> None:
        """Close SFTP client + underlying transport."""
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None
        try:
            if self._transport is not None:
                self._transport.close()
        finally:
            self._transport = None

    def __enter__(self) -> SFTPConnection:
        self.connect()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()
