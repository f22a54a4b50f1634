"""
Collaborator protocols for the import pipeline.

The matcher and the reconciliation service talk to the product catalog, the
stock ledger and accounts payable only through these protocols.  SQLAlchemy
implementations live in fiscal_modules (inventory, ap); tests can substitute
in-memory ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol
from uuid import UUID


@dataclass(frozen=True)
class CatalogProduct:
    """What the matcher needs to know about a catalog product."""

    id: UUID
    name: str
    sku: str | None = None
    barcode: str | None = None
    unit: str | None = None


class StockDirection(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


@dataclass(frozen=True)
class PayableRequest:
    """A liability to register for an entry document."""

    creditor_name: str
    description: str
    amount: Decimal
    due_date: date
    document_number: str
    reference_id: UUID
    reference_type: str = "fiscal_import"
    status: str = "pending"


class Catalog(Protocol):
    def find_by_sku_or_barcode(self, code: str) -> CatalogProduct | None:
        """Exact lookup on SKU or barcode."""
        ...

    def search_by_text(self, text: str, limit: int) -> list[CatalogProduct]:
        """Candidate products whose name matches the search words."""
        ...

    def get_product(self, product_id: UUID) -> CatalogProduct | None:
        ...

    def create_product(
        self,
        sku: str,
        name: str,
        unit: str | None,
        actor_id: UUID,
    ) -> CatalogProduct:
        ...


class Inventory(Protocol):
    def increase_stock(self, product_id: UUID, quantity: Decimal) -> None:
        ...

    def decrease_stock(self, product_id: UUID, quantity: Decimal) -> None:
        ...

    def record_transaction(
        self,
        product_id: UUID,
        direction: StockDirection,
        quantity: Decimal,
        reference_id: UUID,
        reference_type: str,
        notes: str,
        actor_id: UUID,
    ) -> UUID:
        """Append one immutable stock movement record."""
        ...


class PayableLedger(Protocol):
    def create_payable(self, request: PayableRequest, actor_id: UUID) -> UUID:
        ...
