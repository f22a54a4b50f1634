"""
Module: fiscal_modules.inventory.orm
Responsibility: SQLAlchemy ORM models for the product catalog and the stock
    movement log that fiscal imports write to.

Invariants enforced:
    - Quantities use Decimal (Numeric(38,9)) -- NEVER float.
    - InventoryTransactionModel rows are append-only; nothing updates them.
    - stock_quantity only changes through single-statement increments in
      fiscal_modules.inventory.service.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fiscal_ingestion.collaborators import CatalogProduct
from fiscal_kernel.db.base import TrackedBase


class ProductModel(TrackedBase):
    """
    ORM model for catalog products.

    Guarantees:
        - sku is unique when present (uq_products_sku).
        - stock_quantity uses Decimal and starts at zero.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_products_sku"),
        Index("idx_products_barcode", "barcode"),
        Index("idx_products_name", "name"),
    )

    sku: Mapped[str | None] = mapped_column(String(60), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(60), nullable=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    unit: Mapped[str | None] = mapped_column(String(10), nullable=True)
    stock_quantity: Mapped[Decimal] = mapped_column(
        default=Decimal("0"), nullable=False
    )
    active: Mapped[bool] = mapped_column(default=True, nullable=False)

    def to_dto(self) -> CatalogProduct:
        return CatalogProduct(
            id=self.id,
            name=self.name,
            sku=self.sku,
            barcode=self.barcode,
            unit=self.unit,
        )

    def __repr__(self) -> str:
        return f"<ProductModel {self.sku or self.id} {self.name!r}>"


class InventoryTransactionModel(TrackedBase):
    """
    ORM model for one stock movement.

    Guarantees:
        - direction is "entry" or "exit"; quantity is always positive.
        - reference_id/reference_type trace the movement to its origin
          (a fiscal import for rows written by reconciliation).
    """

    __tablename__ = "inventory_transactions"

    __table_args__ = (
        Index("idx_inv_txn_product", "product_id"),
        Index("idx_inv_txn_reference", "reference_type", "reference_id"),
    )

    # Product reference (no FK)
    product_id: Mapped[UUID] = mapped_column(nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    transaction_date: Mapped[datetime] = mapped_column(nullable=False)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
