"""
Typed exception hierarchy for the fiscal import subsystem.

Every error has a TYPED class (catch by type, not by message), a class-level
``code`` (machine-readable, API-safe) and carries its context as attributes.

Three categories of failure exist, and only two of them are exceptions:

    structural    -- returned as data (ValidationError tuples) by the
                     structural validator; never raised by it.
    operational   -- network, parse, persistence failures while creating an
                     import or applying it.  Raised with a readable message;
                     the underlying exception is chained as __cause__.
    precondition  -- an operation against a record in the wrong state.
                     Raised with the offending status named explicitly.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FiscalKernelError (base)
    |
    +-- DocumentImportError
    |   +-- InvalidDocumentError
    |   +-- DuplicateDocumentError
    |   +-- DocumentParseError
    |   +-- DocumentFetchError
    |   +-- ImportOperationError
    |   +-- ImportNotFoundError
    |   +-- LineItemNotFoundError
    |
    +-- ImportStateError
    |   +-- InvalidImportStatusError
    |
    +-- ReconciliationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Import          | INVALID_DOCUMENT_REJECTED   | Structural validation or totals policy failed
                | DUPLICATE_DOCUMENT_KEY      | Legal document key already imported
                | DOCUMENT_PARSE_FAILED       | Bytes could not be normalized
                | DOCUMENT_FETCH_FAILED       | URL download failed (HTTP status kept)
                | IMPORT_OPERATION_FAILED     | Unexpected failure creating the import
                | IMPORT_NOT_FOUND            | Import ID doesn't exist
                | LINE_ITEM_NOT_FOUND         | Item ID not part of the import
----------------|-----------------------------|-----------------------------------------
State           | INVALID_IMPORT_STATUS       | Operation not allowed in current status
----------------|-----------------------------|-----------------------------------------
Reconciliation  | RECONCILIATION_FAILED       | Stock/payable application rolled back
----------------|-----------------------------|-----------------------------------------
Config          | INVALID_CONFIGURATION       | Import policy failed validation
"""

from __future__ import annotations

from typing import Any, Sequence


class FiscalKernelError(Exception):
    """
    Base exception for all fiscal import errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FISCAL_KERNEL_ERROR"


# Import-related exceptions


class DocumentImportError(FiscalKernelError):
    """Base exception for failures while importing a document."""

    code: str = "DOCUMENT_IMPORT_ERROR"


class InvalidDocumentError(DocumentImportError):
    """The document failed structural validation or the totals policy."""

    code: str = "INVALID_DOCUMENT_REJECTED"

    def __init__(self, errors: Sequence[Any]):
        self.errors = tuple(errors)
        first = self.errors[0].message if self.errors else "unknown validation error"
        super().__init__(f"Invalid document: {first}")

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)


class DuplicateDocumentError(DocumentImportError):
    """A document with the same legal key has already been imported."""

    code: str = "DUPLICATE_DOCUMENT_KEY"

    def __init__(self, document_key: str, existing_import_id: Any = None):
        self.document_key = document_key
        self.existing_import_id = existing_import_id
        super().__init__(
            f"Document key {document_key} already imported"
            + (f" as {existing_import_id}" if existing_import_id else "")
        )


class DocumentParseError(DocumentImportError):
    """Raw bytes could not be normalized into an envelope and items."""

    code: str = "DOCUMENT_PARSE_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to process document: {reason}")


class DocumentFetchError(DocumentImportError):
    """
    Downloading a document from a URL failed.

    status_code is None when no HTTP response was received (timeout,
    connection refused, DNS failure).
    """

    code: str = "DOCUMENT_FETCH_FAILED"

    def __init__(self, url: str, status_code: int | None, reason: str):
        self.url = url
        self.status_code = status_code
        self.reason = reason
        if status_code is None:
            msg = f"Failed to download document from {url}: {reason}"
        else:
            msg = f"Failed to download document from {url}: {status_code} {reason}"
        super().__init__(msg)


class ImportOperationError(DocumentImportError):
    """Unexpected failure while creating or updating an import."""

    code: str = "IMPORT_OPERATION_FAILED"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Failed to {operation}: {reason}")


class ImportNotFoundError(DocumentImportError):
    """Import with given ID was not found."""

    code: str = "IMPORT_NOT_FOUND"

    def __init__(self, import_id: Any):
        self.import_id = str(import_id)
        super().__init__(f"Import not found: {import_id}")


class LineItemNotFoundError(DocumentImportError):
    """Line item does not exist or belongs to a different import."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, import_id: Any, item_id: Any):
        self.import_id = str(import_id)
        self.item_id = str(item_id)
        super().__init__(f"Line item {item_id} not found in import {import_id}")


# State exceptions


class ImportStateError(FiscalKernelError):
    """Base exception for lifecycle violations."""

    code: str = "IMPORT_STATE_ERROR"


class InvalidImportStatusError(ImportStateError):
    """The import is not in a status that allows the requested operation."""

    code: str = "INVALID_IMPORT_STATUS"

    def __init__(self, import_id: Any, status: str, expected: Sequence[str] = ()):
        self.import_id = str(import_id)
        self.status = status
        self.expected = tuple(expected)
        msg = f"Import {import_id} is in invalid status: {status}"
        if self.expected:
            msg += f" (expected {', '.join(self.expected)})"
        super().__init__(msg)


# Reconciliation exceptions


class ReconciliationError(FiscalKernelError):
    """Applying stock and payable effects failed; all writes were rolled back."""

    code: str = "RECONCILIATION_FAILED"

    def __init__(self, import_id: Any, reason: str):
        self.import_id = str(import_id)
        self.reason = reason
        super().__init__(f"Failed to complete import {import_id}: {reason}")


# Configuration exceptions


class ConfigurationError(FiscalKernelError):
    """Import policy is malformed or out of range."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for {field}: {reason}")
