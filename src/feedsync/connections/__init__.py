"""
Connections: remote feed hosts (FTP, SFTP) and the DuckDB catalog database.
"""

from typing import Any

from feedsync.connections.duckdb import DuckDBConnection
from feedsync.connections.ftp import FTPConnection
from feedsync.connections.sftp import SFTPConnection
from feedsync.exceptions import ConfigurationError

RemoteConnection = FTPConnection | SFTPConnection


def open_remote(name: str, conn_config: dict[str, Any]) -> RemoteConnection:
    """Build an (unconnected) remote connection from ``{"type": ..., "config": {...}}``."""
    conn_type = conn_config.get("type", "ftp")
    if conn_type == "ftp":
        return FTPConnection(name, conn_config)
    if conn_type == "sftp":
        return SFTPConnection(name, conn_config)
    raise ConfigurationError(f"Unknown remote connection type '{conn_type}' for connection '{name}'")


__all__ = [
    "DuckDBConnection",
    "FTPConnection",
    "SFTPConnection",
    "RemoteConnection",
    "open_remote",
]
