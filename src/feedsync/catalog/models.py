"""
Catalog and feed record types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

DISBARRED = "1"
NOT_DISBARRED = "0"


@dataclass
class Barcode:
    """A barcode owned by one product; ``value`` is its identity when diffing."""

    value: str
    quantity: int
    id: str | None = None


@dataclass
class Product:
    id: str
    product_code: str
    name: str
    description: str | None
    price: int | None
    group_code: str
    group_description: str
    active: bool
    old_code: str | None = None
    barcodes: list[Barcode] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class FeedRecord:
    """
    One normalized ``Article`` from the feed.

    ``price`` is already scaled to minor units (``"12,50"`` -> ``1250``) and
    ``barcodes`` is always a list, whatever shape the source used.
    """

    code: str
    old_code: str
    description: str
    price: int | None
    disbarred: str
    group_code: str
    group_description: str
    barcodes: tuple[Barcode, ...] = ()

    @property
    def identity(self) -> str:
        """``code``, falling back to ``old_code`` when the code is empty."""
        return self.code or self.old_code

    @property
    def is_disbarred(self) -> bool:
        return self.disbarred == DISBARRED
