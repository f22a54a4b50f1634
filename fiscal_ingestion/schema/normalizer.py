"""
Schema normalizer: raw fiscal XML -> NormalizedDocument.

Contract:
    Same bytes (and same fallback time) always produce an equal
    NormalizedDocument.  Numbers that fail to parse become Decimal("0");
    only bytes that cannot be read as a known subtype raise.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from lxml import etree

from fiscal_ingestion.domain.types import (
    DocumentEnvelope,
    LineItemDraft,
    NormalizedDocument,
)
from fiscal_ingestion.schema.subtypes import SubtypeSchema, detect_subtype
from fiscal_ingestion.schema.xml_tree import (
    find_children,
    find_first,
    find_path,
    parse_xml,
    text_at,
)
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.exceptions import DocumentParseError

_ZERO = Decimal("0")


def to_decimal(text: str | None) -> Decimal:
    """Tolerant numeric parse: anything unreadable or non-finite is zero."""
    if not text:
        return _ZERO
    try:
        value = Decimal(text.strip())
    except InvalidOperation:
        return _ZERO
    return value if value.is_finite() else _ZERO


def parse_issue_date(text: str | None) -> datetime | None:
    """ISO-8601 with or without offset; naive values are UTC."""
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _read_items(info: etree._Element) -> tuple[LineItemDraft, ...]:
    items = []
    for index, det in enumerate(find_children(info, "det"), start=1):
        prod = find_path(det, "prod")
        if prod is None:
            continue
        items.append(
            LineItemDraft(
                line_number=index,
                product_code=text_at(prod, "cProd"),
                description=text_at(prod, "xProd"),
                quantity=to_decimal(text_at(prod, "qCom")),
                unit=text_at(prod, "uCom"),
                unit_value=to_decimal(text_at(prod, "vUnCom")),
                total_value=to_decimal(text_at(prod, "vProd")),
                tax_codes={
                    "ncm": text_at(prod, "NCM"),
                    "cfop": text_at(prod, "CFOP"),
                    "cest": text_at(prod, "CEST"),
                },
            )
        )
    return tuple(items)


def _issue_date_text(schema: SubtypeSchema, info: etree._Element) -> str:
    for tag in schema.date_tags:
        value = text_at(info, "ide", tag)
        if value:
            return value
    return ""


def normalize_document(
    raw: bytes | str,
    clock: Clock | None = None,
) -> NormalizedDocument:
    """
    Parse raw bytes into an envelope and line items.

    Args:
        raw: Document bytes (or text).
        clock: Supplies the document date when the document has none.

    Raises:
        DocumentParseError: malformed markup, unknown subtype, or missing
            info block.
    """
    try:
        tree = parse_xml(raw)
    except etree.XMLSyntaxError as exc:
        raise DocumentParseError(f"malformed XML: {exc}") from exc

    detected = detect_subtype(tree)
    if detected is None:
        raise DocumentParseError("document type not recognized")
    schema, subtype_node = detected

    info = find_first(subtype_node, schema.info_tag)
    if info is None:
        raise DocumentParseError(f"{schema.info_tag} block not found")

    document_key = schema.strip_key_prefix(info.get("Id", "")) or None

    issue_date = parse_issue_date(_issue_date_text(schema, info))
    if issue_date is None:
        issue_date = (clock or SystemClock()).now()

    issuer_document = text_at(info, "emit", "CNPJ") or text_at(info, "emit", "CPF")

    envelope = DocumentEnvelope(
        document_type=schema.document_type,
        document_number=text_at(info, "ide", schema.number_tag),
        document_key=document_key,
        document_date=issue_date,
        issuer_name=text_at(info, "emit", "xNome"),
        issuer_document=issuer_document,
        total_value=to_decimal(text_at(info, *schema.total_path)),
    )

    items = _read_items(info) if schema.has_merchandise else ()
    return NormalizedDocument(envelope=envelope, items=items)
