"""
Subtype schemas.

Each fiscal document subtype is one frozen ``SubtypeSchema`` value describing
where its fields live.  Parsing dispatches on the schema instead of probing
which fields happen to be present.
"""

from __future__ import annotations

from dataclasses import dataclass

from lxml import etree

from fiscal_ingestion.domain.types import DocumentType
from fiscal_ingestion.schema.xml_tree import find_first


@dataclass(frozen=True)
class SubtypeSchema:
    document_type: DocumentType
    root_tag: str
    info_tag: str
    key_prefix: str
    number_tag: str
    total_path: tuple[str, ...]
    has_merchandise: bool
    date_tags: tuple[str, ...] = ("dhEmi", "dhSaiEnt")

    def strip_key_prefix(self, raw_id: str) -> str:
        raw_id = raw_id.strip()
        if raw_id.startswith(self.key_prefix):
            return raw_id[len(self.key_prefix):]
        return raw_id


NFE = SubtypeSchema(
    document_type=DocumentType.NFE,
    root_tag="NFe",
    info_tag="infNFe",
    key_prefix="NFe",
    number_tag="nNF",
    total_path=("total", "ICMSTot", "vNF"),
    has_merchandise=True,
)

NFCE = SubtypeSchema(
    document_type=DocumentType.NFCE,
    root_tag="NFCe",
    info_tag="infNFe",
    key_prefix="NFe",
    number_tag="nNF",
    total_path=("total", "ICMSTot", "vNF"),
    has_merchandise=True,
)

CTE = SubtypeSchema(
    document_type=DocumentType.CTE,
    root_tag="CTe",
    info_tag="infCte",
    key_prefix="CTe",
    number_tag="nCT",
    total_path=("vPrest", "vTPrest"),
    has_merchandise=False,
)

MDFE = SubtypeSchema(
    document_type=DocumentType.MDFE,
    root_tag="MDFe",
    info_tag="infMDFe",
    key_prefix="MDFe",
    number_tag="nMDF",
    total_path=("tot", "vCarga"),
    has_merchandise=False,
)

# Detection order when several root tags appear in one tree.
SUBTYPES: tuple[SubtypeSchema, ...] = (NFE, NFCE, CTE, MDFE)

_BY_TYPE = {s.document_type: s for s in SUBTYPES}


def schema_for(document_type: DocumentType | str) -> SubtypeSchema:
    return _BY_TYPE[DocumentType(document_type)]


def detect_subtype(
    tree: etree._Element,
) -> tuple[SubtypeSchema, etree._Element] | None:
    """Find the first known subtype element anywhere in the tree."""
    for schema in SUBTYPES:
        node = find_first(tree, schema.root_tag)
        if node is not None:
            return schema, node
    return None
