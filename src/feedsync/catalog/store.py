"""
Product catalog store.

The reconciliation engine only talks to the catalog through the narrow
``CatalogStore`` protocol. ``DuckDBCatalogStore`` implements it on the ibis
DuckDB backend; every method is safe to call from worker threads, and
``transaction()`` groups several calls into one atomic unit.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Protocol

from feedsync.catalog.models import Barcode, Product
from feedsync.connections.duckdb import DuckDBConnection
from feedsync.exceptions import CatalogStoreError
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.catalog.store")

PRODUCT_COLUMNS = (
    "id",
    "product_code",
    "old_code",
    "name",
    "description",
    "price",
    "group_code",
    "group_description",
    "active",
    "created_at",
    "updated_at",
)

# Columns update_product() may change.
UPDATABLE_COLUMNS = frozenset(
    {"product_code", "old_code", "name", "description", "price", "group_code", "group_description", "active"}
)


class CatalogStore(Protocol):
    """Operations the reconciliation engine needs from the catalog."""

    def find_products_by_code(self, code: str) -> list[Product]: ...

    def find_product_by_code(self, code: str) -> Product | None: ...

    def create_product(
        self,
        *,
        product_code: str,
        name: str,
        description: str | None,
        price: int | None,
        group_code: str,
        group_description: str,
        active: bool = True,
        old_code: str | None = None,
        barcodes: Iterable[Barcode] = (),
    ) -> Product: ...

    def update_product(self, product_id: str, fields: dict[str, Any]) -> Product: ...

    def deactivate_products(self, code: str) -> int: ...

    def create_barcode(self, product_id: str, barcode: Barcode) -> Barcode: ...

    def update_barcode(self, barcode_id: str, quantity: int) -> None: ...

    def delete_barcodes(self, barcode_ids: Sequence[str]) -> int: ...

    def transaction(self) -> Any: ...


def _escape_sql_string(value: str) -> str:
    """Escape single quotes for SQL strings."""
    return value.replace("'", "''")


def _sql_value(value: Any) -> str:
    """Convert Python value to its SQL literal."""
    if value is None:
        return "NULL"
    # bool before int: isinstance(True, int) is True
    elif isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    elif isinstance(value, int):
        return str(value)
    elif isinstance(value, datetime):
        return f"TIMESTAMP '{value.isoformat()}'"
    else:
        return f"'{_escape_sql_string(str(value))}'"


def _new_id() -> str:
    return uuid.uuid4().hex


class DuckDBCatalogStore:
    """Catalog store backed by DuckDB through ibis."""

    def __init__(self, path: str = ":memory:", *, connection: DuckDBConnection | None = None):
        self._conn_wrapper = connection or DuckDBConnection("catalog", {"path": path})
        self._lock = threading.RLock()
        self._tx_depth = 0
        self._initialized = False

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _execute(self, query: str) -> Any:
        backend = self._conn_wrapper.connection
        try:
            return backend.raw_sql(query)
        except CatalogStoreError:
            raise
        except Exception as e:
            raise CatalogStoreError(f"Catalog query failed: {e}", details={"query": query.strip()[:200]}) from e

    def _fetchall(self, query: str) -> list[tuple]:
        return self._execute(query).fetchall()

    def initialize(self) -> None:
        """Create the product and barcode tables if they don't exist."""
        with self._lock:
            if self._initialized:
                return
            self._execute(
                """
                CREATE TABLE IF NOT EXISTS product (
                    id VARCHAR PRIMARY KEY,
                    product_code VARCHAR NOT NULL,
                    old_code VARCHAR,
                    name VARCHAR NOT NULL,
                    description VARCHAR,
                    price BIGINT,
                    group_code VARCHAR,
                    group_description VARCHAR,
                    active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            self._execute(
                """
                CREATE TABLE IF NOT EXISTS barcode (
                    id VARCHAR PRIMARY KEY,
                    product_id VARCHAR NOT NULL,
                    barcode VARCHAR NOT NULL,
                    quantity INTEGER NOT NULL
                )
                """
            )
            self._initialized = True
            logger.debug("Catalog schema initialized")

    @contextmanager
    def transaction(self) -> Iterator[DuckDBCatalogStore]:
        """
        Run the enclosed store calls as one atomic unit.

        Nested blocks join the outermost transaction. Any exception rolls the
        whole unit back and is re-raised.
        """
        with self._lock:
            self.initialize()
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield self
                finally:
                    self._tx_depth -= 1
                return

            self._execute("BEGIN TRANSACTION")
            self._tx_depth = 1
            try:
                yield self
            except BaseException:
                self._tx_depth = 0
                try:
                    self._execute("ROLLBACK")
                except CatalogStoreError as e:
                    logger.warning(f"Rollback failed: {e}")
                raise
            self._tx_depth = 0
            self._execute("COMMIT")

    def close(self) -> None:
        with self._lock:
            self._conn_wrapper.close()
            self._initialized = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load_products(self, where: str) -> list[Product]:
        with self._lock:
            self.initialize()
            rows = self._fetchall(
                f"SELECT {', '.join(PRODUCT_COLUMNS)} FROM product WHERE {where} ORDER BY created_at, id"
            )
            products = [self._row_to_product(row) for row in rows]
            if not products:
                return []

            by_id = {p.id: p for p in products}
            ids = ", ".join(_sql_value(pid) for pid in by_id)
            for barcode_id, product_id, value, quantity in self._fetchall(
                f"SELECT id, product_id, barcode, quantity FROM barcode "
                f"WHERE product_id IN ({ids}) ORDER BY barcode, id"
            ):
                by_id[product_id].barcodes.append(Barcode(value=value, quantity=int(quantity), id=barcode_id))
            return products

    @staticmethod
    def _row_to_product(row: tuple) -> Product:
        data = dict(zip(PRODUCT_COLUMNS, row))
        return Product(
            id=data["id"],
            product_code=data["product_code"],
            old_code=data["old_code"],
            name=data["name"],
            description=data["description"],
            price=int(data["price"]) if data["price"] is not None else None,
            group_code=data["group_code"],
            group_description=data["group_description"],
            active=bool(data["active"]),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def find_products_by_code(self, code: str) -> list[Product]:
        """All products (active or not) carrying ``code``, oldest first."""
        return self._load_products(f"product_code = {_sql_value(code)}")

    def find_product_by_code(self, code: str) -> Product | None:
        """
        The product for ``code``, preferring the active row.

        Raises:
            CatalogStoreError: If more than one active product carries the code
        """
        products = self.find_products_by_code(code)
        active = [p for p in products if p.active]
        if len(active) > 1:
            raise CatalogStoreError(
                f"Expected one active product for code '{code}', found {len(active)}",
                details={"product_code": code},
            )
        if active:
            return active[0]
        return products[-1] if products else None

    def get_product(self, product_id: str) -> Product | None:
        products = self._load_products(f"id = {_sql_value(product_id)}")
        return products[0] if products else None

    def list_products(self, *, active_only: bool = False) -> list[Product]:
        return self._load_products("active" if active_only else "TRUE")

    def count_products(self) -> int:
        with self._lock:
            self.initialize()
            return int(self._fetchall("SELECT count(*) FROM product")[0][0])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_product(
        self,
        *,
        product_code: str,
        name: str,
        description: str | None,
        price: int | None,
        group_code: str,
        group_description: str,
        active: bool = True,
        old_code: str | None = None,
        barcodes: Iterable[Barcode] = (),
    ) -> Product:
        """Insert a product and its barcodes atomically."""
        product_id = _new_id()
        with self.transaction():
            values = ", ".join(
                _sql_value(v)
                for v in (
                    product_id,
                    product_code,
                    old_code,
                    name,
                    description,
                    price,
                    group_code,
                    group_description,
                    active,
                )
            )
            self._execute(
                "INSERT INTO product (id, product_code, old_code, name, description, price, "
                f"group_code, group_description, active, created_at, updated_at) "
                f"VALUES ({values}, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
            )
            for barcode in barcodes:
                self.create_barcode(product_id, barcode)
            product = self.get_product(product_id)
        assert product is not None
        return product

    def update_product(self, product_id: str, fields: dict[str, Any]) -> Product:
        """
        Update scalar product fields.

        Raises:
            CatalogStoreError: On unknown columns or a missing product
        """
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise CatalogStoreError(f"Cannot update product columns: {sorted(unknown)}")

        with self.transaction():
            if fields:
                assignments = ", ".join(f"{col} = {_sql_value(val)}" for col, val in sorted(fields.items()))
                self._execute(
                    f"UPDATE product SET {assignments}, updated_at = CURRENT_TIMESTAMP "
                    f"WHERE id = {_sql_value(product_id)}"
                )
            product = self.get_product(product_id)
        if product is None:
            raise CatalogStoreError(f"Product not found: {product_id}", details={"id": product_id})
        return product

    def deactivate_products(self, code: str) -> int:
        """Mark every active product with ``code`` inactive; returns how many changed."""
        with self.transaction():
            where = f"product_code = {_sql_value(code)} AND active"
            count = int(self._fetchall(f"SELECT count(*) FROM product WHERE {where}")[0][0])
            if count:
                self._execute(f"UPDATE product SET active = FALSE, updated_at = CURRENT_TIMESTAMP WHERE {where}")
        return count

    def create_barcode(self, product_id: str, barcode: Barcode) -> Barcode:
        barcode_id = _new_id()
        with self.transaction():
            self._execute(
                "INSERT INTO barcode (id, product_id, barcode, quantity) VALUES "
                f"({_sql_value(barcode_id)}, {_sql_value(product_id)}, "
                f"{_sql_value(barcode.value)}, {_sql_value(int(barcode.quantity))})"
            )
        return Barcode(value=barcode.value, quantity=barcode.quantity, id=barcode_id)

    def update_barcode(self, barcode_id: str, quantity: int) -> None:
        with self.transaction():
            self._execute(f"UPDATE barcode SET quantity = {int(quantity)} WHERE id = {_sql_value(barcode_id)}")

    def delete_barcodes(self, barcode_ids: Sequence[str]) -> int:
        if not barcode_ids:
            return 0
        with self.transaction():
            ids = ", ".join(_sql_value(bid) for bid in barcode_ids)
            self._execute(f"DELETE FROM barcode WHERE id IN ({ids})")
        return len(barcode_ids)
