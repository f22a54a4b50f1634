"""
fiscal_ingestion.domain.types -- Pure frozen dataclasses for fiscal imports.

ZERO I/O. Imports only from fiscal_kernel/domain/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fiscal_kernel.domain.dtos import ValidationError, ValidationResult


# =============================================================================
# Enums
# =============================================================================


class DocumentType(str, Enum):
    """Fiscal document subtype."""

    NFE = "nfe"  # Electronic invoice
    NFCE = "nfce"  # Electronic consumer invoice
    CTE = "cte"  # Transport waybill
    MDFE = "mdfe"  # Cargo manifest


class SourceType(str, Enum):
    FILE = "file"
    URL = "url"


class ImportStatus(str, Enum):
    """Document import lifecycle status."""

    PENDING = "pending"  # Record created, matching not run yet
    PROCESSING = "processing"  # Matching ran, items await resolution
    VALIDATED = "validated"  # Every item resolved, ready to complete
    IMPORTED = "imported"  # Stock and payable applied (terminal)
    ERROR = "error"  # Processing failed after the record was created


class LineItemStatus(str, Enum):
    """Per-item reconciliation status."""

    PENDING = "pending"
    MATCHED = "matched"
    CREATED = "created"  # Resolved by registering a new catalog product
    ERROR = "error"


class MatchSource(str, Enum):
    """How an item's product was determined."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    MANUAL = "manual"
    CREATED = "created"


RESOLVED_ITEM_STATUSES = frozenset({LineItemStatus.MATCHED, LineItemStatus.CREATED})
UNRESOLVED_ITEM_STATUSES = frozenset({LineItemStatus.PENDING, LineItemStatus.ERROR})


# =============================================================================
# Normalized document (normalizer output)
# =============================================================================


@dataclass(frozen=True)
class DocumentEnvelope:
    """Header fields common to every subtype."""

    document_type: DocumentType
    document_number: str
    document_key: str | None
    document_date: datetime
    issuer_name: str
    issuer_document: str
    total_value: Decimal


@dataclass(frozen=True)
class LineItemDraft:
    """One product line as read from the document, before matching."""

    line_number: int  # 1-based, source order
    product_code: str
    description: str
    quantity: Decimal
    unit: str
    unit_value: Decimal
    total_value: Decimal
    tax_codes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NormalizedDocument:
    envelope: DocumentEnvelope
    items: tuple[LineItemDraft, ...] = ()

    @property
    def items_total(self) -> Decimal:
        return sum((i.total_value for i in self.items), Decimal("0"))


@dataclass(frozen=True)
class DocumentValidationResult(ValidationResult):
    """Structural validation result plus the identifiers found on the way."""

    document_type: DocumentType | None = None
    document_key: str | None = None
    document_number: str | None = None
    issue_date: str | None = None


# =============================================================================
# Persisted aggregate snapshots
# =============================================================================


@dataclass(frozen=True)
class LineItem:
    """Immutable snapshot of a persisted line item."""

    id: UUID
    document_import_id: UUID
    line_number: int
    product_code: str
    description: str
    quantity: Decimal
    unit: str
    unit_value: Decimal
    total_value: Decimal
    status: LineItemStatus
    tax_codes: dict[str, Any] = field(default_factory=dict)
    matched_product_id: UUID | None = None
    match_confidence: float | None = None
    match_source: MatchSource | None = None
    error_details: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status in RESOLVED_ITEM_STATUSES


@dataclass(frozen=True)
class DocumentImport:
    """Immutable snapshot of a document import with its items."""

    id: UUID
    source_type: SourceType
    source_name: str | None
    source_url: str | None
    document_type: DocumentType
    document_number: str
    document_key: str | None
    document_date: datetime
    issuer_name: str
    issuer_document: str
    total_value: Decimal
    status: ImportStatus
    items: tuple[LineItem, ...] = ()
    updated_inventory: bool = False
    updated_financial: bool = False
    warnings: tuple[ValidationError, ...] = ()
    error_details: str | None = None
    processing_date: datetime | None = None
    import_date: datetime | None = None
    created_by_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def pending_items(self) -> int:
        return sum(1 for i in self.items if i.status in UNRESOLVED_ITEM_STATUSES)


# =============================================================================
# Service inputs and results
# =============================================================================


@dataclass(frozen=True)
class SourceFile:
    """A document delivered as an in-memory file."""

    name: str
    content: bytes


@dataclass(frozen=True)
class ImportFilters:
    """Listing filters. Dates are inclusive bounds on document date."""

    status: ImportStatus | None = None
    document_type: DocumentType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class ItemMapping:
    """Manual resolution of one line item to a catalog product."""

    item_id: UUID
    product_id: UUID


@dataclass(frozen=True)
class FileImportResult:
    file: str
    success: bool
    message: str
    id: UUID | None = None


@dataclass(frozen=True)
class BatchImportResult:
    success: int
    failed: int
    results: tuple[FileImportResult, ...] = ()


@dataclass(frozen=True)
class MappingValidationResult:
    success: bool
    message: str
    status: ImportStatus
    pending_items: int = 0


@dataclass(frozen=True)
class CompletionResult:
    success: bool
    message: str
    inventory_updated: bool = False
    financial_updated: bool = False
