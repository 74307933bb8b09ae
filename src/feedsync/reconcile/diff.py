"""
Pure diff functions: incoming FeedRecord vs stored Product.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from feedsync.catalog.models import Barcode, FeedRecord, Product


@dataclass(frozen=True)
class BarcodeDiff:
    """Barcode mutations needed to turn the stored set into the incoming one, keyed by value."""

    create: tuple[Barcode, ...] = ()
    update: tuple[tuple[str, int], ...] = ()  # (barcode id, new quantity)
    delete: tuple[str, ...] = ()  # barcode ids

    @property
    def is_empty(self) -> bool:
        return not (self.create or self.update or self.delete)


@dataclass(frozen=True)
class ProductChanges:
    fields: dict[str, Any] = field(default_factory=dict)
    barcodes: BarcodeDiff = field(default_factory=BarcodeDiff)

    @property
    def is_empty(self) -> bool:
        return not self.fields and self.barcodes.is_empty


def dedupe_barcodes(barcodes: Iterable[Barcode]) -> dict[str, Barcode]:
    """Index barcodes by value; a repeated value keeps the last quantity seen."""
    return {b.value: b for b in barcodes}


def diff_barcodes(stored: Iterable[Barcode], incoming: Iterable[Barcode]) -> BarcodeDiff:
    """
    Compare stored and incoming barcode sets by value.

    - in incoming only -> create
    - in both with a different quantity -> update in place
    - in stored only -> delete

    Stored duplicates of the same value (which the diff never produces) are
    reduced to one row; the extra rows are deleted.
    """
    incoming_by_value = dedupe_barcodes(incoming)

    stored_by_value: dict[str, Barcode] = {}
    delete: list[str] = []
    for barcode in stored:
        if barcode.value in stored_by_value or barcode.value not in incoming_by_value:
            if barcode.id is not None:
                delete.append(barcode.id)
            continue
        stored_by_value[barcode.value] = barcode

    update: list[tuple[str, int]] = []
    for value, existing in stored_by_value.items():
        wanted = incoming_by_value[value].quantity
        if existing.quantity != wanted and existing.id is not None:
            update.append((existing.id, wanted))

    create = tuple(
        Barcode(value=b.value, quantity=b.quantity) for v, b in incoming_by_value.items() if v not in stored_by_value
    )
    return BarcodeDiff(create=create, update=tuple(update), delete=tuple(delete))


def desired_fields(record: FeedRecord) -> dict[str, Any]:
    """Stored column values an active, non-disbarred record maps to."""
    return {
        "name": record.description,
        "description": record.description,
        "price": record.price,
        "group_code": record.group_code,
        "group_description": record.group_description,
        "old_code": record.old_code or None,
        "active": True,
    }


def diff_product(product: Product, record: FeedRecord) -> ProductChanges:
    """Field-level and barcode-level changes needed to bring ``product`` in line with ``record``."""
    fields = {
        column: value for column, value in desired_fields(record).items() if getattr(product, column) != value
    }
    return ProductChanges(fields=fields, barcodes=diff_barcodes(product.barcodes, record.barcodes))
