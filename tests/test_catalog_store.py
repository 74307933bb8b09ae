"""
Tests for the DuckDB-backed catalog store.
"""

import pytest

from feedsync.catalog.models import Barcode
from feedsync.catalog.store import _sql_value
from feedsync.exceptions import CatalogStoreError


def _create(store, code="1001", **overrides):
    values = dict(
        product_code=code,
        name="Red 20",
        description="Red 20",
        price=1250,
        group_code="01",
        group_description="Cigarettes",
    )
    values.update(overrides)
    return store.create_product(**values)


class TestSqlValue:
    def test_literals(self):
        assert _sql_value(None) == "NULL"
        assert _sql_value(True) == "TRUE"
        assert _sql_value(False) == "FALSE"
        assert _sql_value(42) == "42"
        assert _sql_value("O'Neil") == "'O''Neil'"


class TestProducts:
    def test_create_and_find(self, store):
        created = _create(store, barcodes=[Barcode("B2", 10), Barcode("A1", 1)])

        found = store.find_product_by_code("1001")
        assert found is not None
        assert found.id == created.id
        assert found.active is True
        assert found.price == 1250
        assert found.old_code is None
        # Barcodes come back ordered by value, with ids
        assert [(b.value, b.quantity) for b in found.barcodes] == [("A1", 1), ("B2", 10)]
        assert all(b.id for b in found.barcodes)

    def test_unknown_code(self, store):
        assert store.find_product_by_code("nope") is None
        assert store.find_products_by_code("nope") == []

    def test_quotes_are_escaped(self, store):
        _create(store, code="X'1", name="Bob's", description="Bob's")
        found = store.find_product_by_code("X'1")
        assert found.name == "Bob's"

    def test_null_price(self, store):
        _create(store, price=None)
        assert store.find_product_by_code("1001").price is None

    def test_update_product(self, store):
        created = _create(store)
        updated = store.update_product(created.id, {"price": 1300, "group_description": "Cigs"})
        assert updated.price == 1300
        assert updated.group_description == "Cigs"
        assert updated.name == "Red 20"

    def test_update_unknown_column(self, store):
        created = _create(store)
        with pytest.raises(CatalogStoreError, match="Cannot update"):
            store.update_product(created.id, {"id": "other"})

    def test_update_missing_product(self, store):
        with pytest.raises(CatalogStoreError, match="not found"):
            store.update_product("missing", {"price": 1})

    def test_deactivate(self, store):
        _create(store)
        assert store.deactivate_products("1001") == 1
        assert store.deactivate_products("1001") == 0
        product = store.find_product_by_code("1001")
        assert product is not None
        assert product.active is False
        assert store.count_products() == 1

    def test_multiple_active_rows_is_an_error(self, store):
        _create(store)
        _create(store)
        with pytest.raises(CatalogStoreError, match="found 2"):
            store.find_product_by_code("1001")

    def test_list_products(self, store):
        _create(store, code="1")
        _create(store, code="2")
        store.deactivate_products("2")
        assert {p.product_code for p in store.list_products()} == {"1", "2"}
        assert [p.product_code for p in store.list_products(active_only=True)] == ["1"]


class TestBarcodes:
    def test_create_update_delete(self, store):
        product = _create(store, barcodes=[])
        a = store.create_barcode(product.id, Barcode("A", 1))
        b = store.create_barcode(product.id, Barcode("B", 2))
        store.update_barcode(a.id, 6)
        assert store.delete_barcodes([b.id]) == 1
        assert store.delete_barcodes([]) == 0

        barcodes = store.get_product(product.id).barcodes
        assert [(x.id, x.value, x.quantity) for x in barcodes] == [(a.id, "A", 6)]


class TestTransactions:
    def test_rollback_on_error(self, store):
        product = _create(store)
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.update_product(product.id, {"price": 1})
                store.create_barcode(product.id, Barcode("NEW", 1))
                raise RuntimeError("boom")

        reloaded = store.get_product(product.id)
        assert reloaded.price == 1250
        assert reloaded.barcodes == []

    def test_nested_blocks_join_outer_transaction(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    _create(store, code="inner")
                raise RuntimeError("outer fails")
        assert store.find_product_by_code("inner") is None

    def test_commit(self, store):
        with store.transaction():
            _create(store, code="a")
            _create(store, code="b")
        assert store.count_products() == 2
