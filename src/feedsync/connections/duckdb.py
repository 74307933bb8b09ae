"""
DuckDB connection via ibis.

Backs the product catalog. A single file-based database is shared by every
job in the process; in-memory databases are used by tests.
"""

import re
from pathlib import Path
from typing import Any

import ibis

from feedsync.exceptions import CatalogStoreError
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.connections.duckdb")


class DuckDBConnection:
    """DuckDB connection wrapper using ibis (lazy)."""

    def __init__(self, name: str, config: dict[str, Any]):
        self.name = name
        self.config = config
        self._connection: ibis.BaseBackend | None = None

    @property
    def path(self) -> str:
        return str(self.config.get("path", ":memory:"))

    @property
    def connection(self) -> ibis.BaseBackend:
        """
        Get the ibis DuckDB backend, connecting on first use.

        Raises:
            CatalogStoreError: If the database file is locked or unreadable
        """
        if self._connection is None:
            path = self.path
            if path == ":memory:":
                self._connection = ibis.duckdb.connect()
            else:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
                try:
                    self._connection = ibis.duckdb.connect(path)
                except Exception as e:
                    error_str = str(e)
                    if "lock" in error_str.lower() or "conflicting" in error_str.lower():
                        pid_match = re.search(r"PID\s+(\d+)", error_str)
                        pid_info = f" (PID: {pid_match.group(1)})" if pid_match else ""
                        raise CatalogStoreError(
                            f"Cannot open catalog database '{path}': file is locked by another process{pid_info}.\n"
                            f"Only one feedsync process may hold a file-based catalog open for writing.",
                            details={"path": path},
                        ) from e
                    raise CatalogStoreError(
                        f"Cannot open catalog database '{path}': {error_str}",
                        details={"path": path},
                    ) from e
            logger.debug(f"Opened DuckDB catalog '{self.name}' at {path}")
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.disconnect()
            except Exception as e:
                logger.debug(f"Error during disconnect() for {self.name}: {e}")
            self._connection = None

    def __enter__(self) -> "DuckDBConnection":
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', path='{self.path}')"
