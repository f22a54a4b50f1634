"""
ORM models for fiscal document imports.

Contract:
    DocumentImportModel is the aggregate root; LineItemModel rows are created
    in the same flush as their parent and never added afterwards.  Nothing is
    physically deleted.  document_key is unique across all imports (NULL keys
    do not collide).

Architecture: fiscal_ingestion/models. Imports from fiscal_kernel.db.base only.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fiscal_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from fiscal_ingestion.domain.types import DocumentImport, LineItem


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from backends without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DocumentImportModel(TrackedBase):
    """One imported fiscal document."""

    __tablename__ = "fiscal_document_imports"

    __table_args__ = (
        UniqueConstraint("document_key", name="uq_fiscal_import_document_key"),
        Index("ix_fiscal_imports_status", "status"),
        Index("ix_fiscal_imports_document_date", "document_date"),
        Index("ix_fiscal_imports_created_at", "created_at"),
    )

    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    document_type: Mapped[str] = mapped_column(String(10), nullable=False)
    document_number: Mapped[str] = mapped_column(String(60), nullable=False, default="")
    document_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    document_date: Mapped[datetime] = mapped_column(nullable=False)
    # Issuer offset from UTC; the local calendar date drives due dates.
    document_utc_offset_minutes: Mapped[int | None] = mapped_column(nullable=True)
    issuer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    issuer_document: Mapped[str] = mapped_column(String(20), nullable=False, default="")
    total_value: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    updated_inventory: Mapped[bool] = mapped_column(default=False, nullable=False)
    updated_financial: Mapped[bool] = mapped_column(default=False, nullable=False)
    warnings: Mapped[list | None] = mapped_column(JSON, nullable=True)
    error_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_date: Mapped[datetime | None] = mapped_column(nullable=True)
    import_date: Mapped[datetime | None] = mapped_column(nullable=True)

    items: Mapped[list["LineItemModel"]] = relationship(
        "LineItemModel",
        back_populates="document_import",
        order_by="LineItemModel.line_number",
        foreign_keys="LineItemModel.document_import_id",
    )

    def local_document_date(self) -> date:
        """Calendar date of issue as seen by the issuer."""
        offset = timedelta(minutes=self.document_utc_offset_minutes or 0)
        return as_utc(self.document_date).astimezone(timezone(offset)).date()

    def to_dto(self) -> DocumentImport:
        from fiscal_ingestion.domain.types import (
            DocumentImport,
            DocumentType,
            ImportStatus,
            SourceType,
        )
        from fiscal_kernel.domain.dtos import ValidationError

        return DocumentImport(
            id=self.id,
            source_type=SourceType(self.source_type),
            source_name=self.source_name,
            source_url=self.source_url,
            document_type=DocumentType(self.document_type),
            document_number=self.document_number,
            document_key=self.document_key,
            document_date=as_utc(self.document_date),
            issuer_name=self.issuer_name,
            issuer_document=self.issuer_document,
            total_value=self.total_value,
            status=ImportStatus(self.status),
            items=tuple(item.to_dto() for item in self.items),
            updated_inventory=self.updated_inventory,
            updated_financial=self.updated_financial,
            warnings=tuple(ValidationError.from_dict(w) for w in self.warnings or ()),
            error_details=self.error_details,
            processing_date=as_utc(self.processing_date),
            import_date=as_utc(self.import_date),
            created_by_id=self.created_by_id,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


class LineItemModel(TrackedBase):
    """One product line of an imported document."""

    __tablename__ = "fiscal_document_items"

    __table_args__ = (
        Index("ix_fiscal_items_import_line", "document_import_id", "line_number"),
        Index("ix_fiscal_items_status", "status"),
    )

    document_import_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_document_imports.id"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(nullable=False)
    product_code: Mapped[str] = mapped_column(String(60), nullable=False, default="")
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    unit_value: Mapped[Decimal] = mapped_column(nullable=False)
    total_value: Mapped[Decimal] = mapped_column(nullable=False)
    tax_codes: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Catalog product reference (no FK; the catalog is a collaborator)
    matched_product_id: Mapped[UUID | None] = mapped_column(nullable=True)
    match_confidence: Mapped[float | None] = mapped_column(nullable=True)
    match_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_details: Mapped[str | None] = mapped_column(Text, nullable=True)

    document_import: Mapped["DocumentImportModel"] = relationship(
        "DocumentImportModel",
        back_populates="items",
        foreign_keys=[document_import_id],
    )

    def to_dto(self) -> LineItem:
        from fiscal_ingestion.domain.types import LineItem, LineItemStatus, MatchSource

        return LineItem(
            id=self.id,
            document_import_id=self.document_import_id,
            line_number=self.line_number,
            product_code=self.product_code,
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            unit_value=self.unit_value,
            total_value=self.total_value,
            status=LineItemStatus(self.status),
            tax_codes=dict(self.tax_codes or {}),
            matched_product_id=self.matched_product_id,
            match_confidence=self.match_confidence,
            match_source=MatchSource(self.match_source) if self.match_source else None,
            error_details=self.error_details,
        )
