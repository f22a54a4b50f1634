"""
fiscal_ingestion.domain -- Pure types, lifecycle rules and validators.

ZERO I/O. Imports only from fiscal_kernel/domain/.
"""

from fiscal_ingestion.domain.state import derive_import_status
from fiscal_ingestion.domain.types import (
    BatchImportResult,
    CompletionResult,
    DocumentEnvelope,
    DocumentImport,
    DocumentType,
    DocumentValidationResult,
    FileImportResult,
    ImportFilters,
    ImportStatus,
    ItemMapping,
    LineItem,
    LineItemDraft,
    LineItemStatus,
    MappingValidationResult,
    MatchSource,
    NormalizedDocument,
    SourceFile,
    SourceType,
)

__all__ = [
    "BatchImportResult",
    "CompletionResult",
    "DocumentEnvelope",
    "DocumentImport",
    "DocumentType",
    "DocumentValidationResult",
    "FileImportResult",
    "ImportFilters",
    "ImportStatus",
    "ItemMapping",
    "LineItem",
    "LineItemDraft",
    "LineItemStatus",
    "MappingValidationResult",
    "MatchSource",
    "NormalizedDocument",
    "SourceFile",
    "SourceType",
    "derive_import_status",
]
