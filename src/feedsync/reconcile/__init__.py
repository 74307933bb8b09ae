"""
Reconciliation of feed records against the product catalog.
"""

from feedsync.reconcile.diff import BarcodeDiff, ProductChanges, diff_barcodes, diff_product
from feedsync.reconcile.engine import ReconcileOutcome, ReconcileSummary, ReconciliationEngine

__all__ = [
    "BarcodeDiff",
    "ProductChanges",
    "diff_barcodes",
    "diff_product",
    "ReconcileOutcome",
    "ReconcileSummary",
    "ReconciliationEngine",
]
