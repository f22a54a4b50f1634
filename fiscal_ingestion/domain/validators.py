"""
Validators for fiscal documents.

validate_document is structural only and never raises: every failure comes
back as a ValidationError in the result.  The declared-total check is kept
separate because whether a mismatch matters is a policy decision made by the
import service.

Architecture: fiscal_ingestion/domain. ZERO I/O.
"""

from __future__ import annotations

from decimal import Decimal

from lxml import etree

from fiscal_ingestion.domain.types import DocumentValidationResult, NormalizedDocument
from fiscal_ingestion.schema.subtypes import detect_subtype, schema_for
from fiscal_ingestion.schema.xml_tree import find_first, parse_xml, text_at
from fiscal_kernel.domain.dtos import ValidationError


def _failure(code: str, message: str) -> DocumentValidationResult:
    return DocumentValidationResult(
        is_valid=False,
        errors=(ValidationError(code=code, message=message),),
    )


def validate_document(raw: bytes | str) -> DocumentValidationResult:
    """Structural validation of raw document bytes."""
    try:
        try:
            tree = parse_xml(raw)
        except etree.XMLSyntaxError as exc:
            return _failure("INVALID_XML", f"Malformed XML: {exc}")

        detected = detect_subtype(tree)
        if detected is None:
            return _failure("INVALID_DOCUMENT", "Fiscal document type not recognized")
        schema, subtype_node = detected

        info = find_first(subtype_node, schema.info_tag)
        if info is None:
            return DocumentValidationResult(
                is_valid=False,
                document_type=schema.document_type,
                errors=(
                    ValidationError(
                        code="MISSING_INFNFE",
                        message=f"{schema.info_tag} element not found",
                        field=schema.info_tag,
                    ),
                ),
            )

        document_key = schema.strip_key_prefix(info.get("Id", ""))
        document_number = text_at(info, "ide", schema.number_tag)
        issue_date = next(
            (v for v in (text_at(info, "ide", t) for t in schema.date_tags) if v),
            "",
        )

        warnings = []
        if not document_key:
            warnings.append(
                ValidationError(
                    code="MISSING_DOCUMENT_KEY",
                    message="Document has no access key",
                    field="document_key",
                )
            )
        if not document_number:
            warnings.append(
                ValidationError(
                    code="MISSING_DOCUMENT_NUMBER",
                    message=f"Document has no number ({schema.number_tag})",
                    field="document_number",
                )
            )
        if not issue_date:
            warnings.append(
                ValidationError(
                    code="MISSING_ISSUE_DATE",
                    message="Document has no issue date",
                    field="document_date",
                )
            )

        return DocumentValidationResult(
            is_valid=True,
            warnings=tuple(warnings),
            document_type=schema.document_type,
            document_key=document_key or None,
            document_number=document_number or None,
            issue_date=issue_date or None,
        )
    except Exception as exc:
        return _failure("VALIDATION_ERROR", str(exc) or type(exc).__name__)


def check_declared_total(
    document: NormalizedDocument,
    tolerance: Decimal,
) -> ValidationError | None:
    """Compare the sum of line totals with the declared document total.

    Only merchandise subtypes with at least one item are checked.
    """
    schema = schema_for(document.envelope.document_type)
    if not schema.has_merchandise or not document.items:
        return None

    declared = document.envelope.total_value
    items_total = document.items_total
    difference = abs(items_total - declared)
    if difference <= tolerance:
        return None

    return ValidationError(
        code="TOTALS_MISMATCH",
        message=(
            f"Line totals {items_total} differ from declared total {declared} "
            f"by {difference}"
        ),
        field="total_value",
        details={
            "declared_total": str(declared),
            "items_total": str(items_total),
            "tolerance": str(tolerance),
        },
    )
