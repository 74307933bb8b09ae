"""
Reconciliation engine.

Applies the minimal catalog mutation for each FeedRecord:

1. identity is ``code``, falling back to ``old_code``;
2. disbarred records deactivate the matching active product (never delete);
3. live records with a code create the product, or update exactly the fields
   and barcodes that differ, in one transaction per record;
4. anything else is skipped.

Records are independent units: a failure rolls back only the current
record's transaction. The failure is then raised to the caller, which aborts
the job; records committed before it stay committed. Applying the same record
twice leaves the catalog as applying it once did.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from feedsync.catalog.models import NOT_DISBARRED, FeedRecord
from feedsync.catalog.store import CatalogStore
from feedsync.exceptions import CatalogStoreError, ReconciliationError
from feedsync.feed.buffer import DEFAULT_HIGH_WATER, DEFAULT_LOW_WATER, run_pipeline
from feedsync.reconcile.diff import dedupe_barcodes, diff_product
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.reconcile")


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DEACTIVATED = "deactivated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass
class ReconcileSummary:
    counts: Counter = field(default_factory=Counter)
    peak_buffered: int = 0

    def add(self, outcome: ReconcileOutcome) -> None:
        self.counts[outcome.value] += 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {o.value: self.counts.get(o.value, 0) for o in ReconcileOutcome}
        data["total"] = self.total
        data["peak_buffered"] = self.peak_buffered
        return data


class ReconciliationEngine:
    """Diffs FeedRecords against a CatalogStore and applies the result."""

    def __init__(self, store: CatalogStore):
        self.store = store

    def apply(self, record: FeedRecord) -> ReconcileOutcome:
        """
        Reconcile one record (blocking).

        Raises:
            ReconciliationError: If the record violates a catalog invariant or
                its transaction failed; nothing from this record is applied
        """
        if record.is_disbarred:
            return self._deactivate(record)
        if record.disbarred == NOT_DISBARRED and record.code:
            return self._upsert(record)

        logger.debug(
            f"Skipping record code={record.code!r} old_code={record.old_code!r} disbarred={record.disbarred!r}"
        )
        return ReconcileOutcome.SKIPPED

    async def reconcile(self, record: FeedRecord) -> ReconcileOutcome:
        """Reconcile one record without blocking the event loop."""
        return await asyncio.to_thread(self.apply, record)

    async def reconcile_all(
        self,
        records: AsyncIterable[FeedRecord],
        *,
        high_water: int = DEFAULT_HIGH_WATER,
        low_water: int = DEFAULT_LOW_WATER,
    ) -> ReconcileSummary:
        """
        Reconcile a lazy record stream, decoding at most ``high_water`` records ahead.
        """
        summary = ReconcileSummary()

        async def consume(record: FeedRecord) -> None:
            summary.add(await self.reconcile(record))

        stats = await run_pipeline(records, consume, high_water=high_water, low_water=low_water)
        summary.peak_buffered = stats.peak
        logger.info(f"Reconciled {summary.total} records: {dict(summary.counts)}")
        return summary

    # ------------------------------------------------------------------

    def _deactivate(self, record: FeedRecord) -> ReconcileOutcome:
        identity = record.identity
        if not identity:
            logger.debug("Skipping disbarred record without code or old code")
            return ReconcileOutcome.SKIPPED
        try:
            count = self.store.deactivate_products(identity)
        except CatalogStoreError as e:
            raise ReconciliationError(identity, f"deactivation failed: {e.message}", cause=e) from e
        if count:
            logger.debug(f"Deactivated {count} product(s) for code {identity}")
            return ReconcileOutcome.DEACTIVATED
        return ReconcileOutcome.UNCHANGED

    def _upsert(self, record: FeedRecord) -> ReconcileOutcome:
        try:
            with self.store.transaction():
                products = self.store.find_products_by_code(record.code)
                active = [p for p in products if p.active]
                if len(active) > 1:
                    raise ReconciliationError(
                        record.code, f"{len(active)} active products share this code; expected at most one"
                    )
                current = active[0] if active else (products[-1] if products else None)

                if current is None:
                    self.store.create_product(
                        product_code=record.code,
                        name=record.description,
                        description=record.description,
                        price=record.price,
                        group_code=record.group_code,
                        group_description=record.group_description,
                        active=True,
                        old_code=record.old_code or None,
                        barcodes=list(dedupe_barcodes(record.barcodes).values()),
                    )
                    return ReconcileOutcome.CREATED

                changes = diff_product(current, record)
                if changes.is_empty:
                    return ReconcileOutcome.UNCHANGED

                if changes.fields:
                    self.store.update_product(current.id, changes.fields)
                for barcode in changes.barcodes.create:
                    self.store.create_barcode(current.id, barcode)
                for barcode_id, quantity in changes.barcodes.update:
                    self.store.update_barcode(barcode_id, quantity)
                if changes.barcodes.delete:
                    self.store.delete_barcodes(list(changes.barcodes.delete))
                return ReconcileOutcome.UPDATED
        except CatalogStoreError as e:
            raise ReconciliationError(record.code, f"catalog write failed: {e.message}", cause=e) from e
