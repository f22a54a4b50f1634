"""Tests for the fiscal exception hierarchy."""

from uuid import uuid4

import pytest

from fiscal_kernel.domain.dtos import ValidationError
from fiscal_kernel.exceptions import (
    ConfigurationError,
    DocumentFetchError,
    DocumentImportError,
    DocumentParseError,
    DuplicateDocumentError,
    FiscalKernelError,
    ImportNotFoundError,
    ImportOperationError,
    ImportStateError,
    InvalidDocumentError,
    InvalidImportStatusError,
    LineItemNotFoundError,
    ReconciliationError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            InvalidDocumentError([]),
            DuplicateDocumentError("123"),
            DocumentParseError("bad"),
            DocumentFetchError("http://x", 404, "Not Found"),
            ImportOperationError("import document", "boom"),
            ImportNotFoundError(uuid4()),
            LineItemNotFoundError(uuid4(), uuid4()),
        ],
    )
    def test_import_errors_share_a_base(self, exc):
        assert isinstance(exc, DocumentImportError)
        assert isinstance(exc, FiscalKernelError)

    def test_state_and_reconciliation_are_separate_branches(self):
        status_error = InvalidImportStatusError(uuid4(), "imported")
        assert isinstance(status_error, ImportStateError)
        assert not isinstance(status_error, DocumentImportError)
        assert not isinstance(ReconciliationError(uuid4(), "x"), DocumentImportError)

    def test_codes_are_distinct(self):
        classes = [
            InvalidDocumentError,
            DuplicateDocumentError,
            DocumentParseError,
            DocumentFetchError,
            ImportOperationError,
            ImportNotFoundError,
            LineItemNotFoundError,
            InvalidImportStatusError,
            ReconciliationError,
            ConfigurationError,
        ]
        codes = [cls.code for cls in classes]
        assert len(set(codes)) == len(codes)


class TestMessages:
    def test_invalid_document_uses_first_error(self):
        errors = [
            ValidationError(code="INVALID_XML", message="Malformed XML: line 1"),
            ValidationError(code="OTHER", message="second"),
        ]
        exc = InvalidDocumentError(errors)
        assert str(exc) == "Invalid document: Malformed XML: line 1"
        assert exc.error_codes == ("INVALID_XML", "OTHER")

    def test_status_error_names_the_status(self):
        exc = InvalidImportStatusError("imp-1", "imported", expected=["validated"])
        assert "invalid status: imported" in str(exc)
        assert exc.status == "imported"
        assert exc.expected == ("validated",)

    def test_fetch_error_keeps_status_code(self):
        exc = DocumentFetchError("http://host/doc.xml", 404, "Not Found")
        assert exc.status_code == 404
        assert "404 Not Found" in str(exc)

    def test_fetch_error_without_response(self):
        exc = DocumentFetchError("http://host/doc.xml", None, "timed out")
        assert exc.status_code is None
        assert str(exc).endswith("timed out")

    def test_operation_error_message(self):
        exc = ImportOperationError("map item", "product not found")
        assert str(exc) == "Failed to map item: product not found"

    def test_duplicate_mentions_existing_import(self):
        existing = uuid4()
        exc = DuplicateDocumentError("3524", existing)
        assert exc.document_key == "3524"
        assert str(existing) in str(exc)
