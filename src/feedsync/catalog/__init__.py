"""
Product catalog: record types and the store contract.
"""

from feedsync.catalog.models import Barcode, FeedRecord, Product
from feedsync.catalog.store import CatalogStore, DuckDBCatalogStore

__all__ = [
    "Barcode",
    "FeedRecord",
    "Product",
    "CatalogStore",
    "DuckDBCatalogStore",
]
