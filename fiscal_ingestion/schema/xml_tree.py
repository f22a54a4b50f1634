"""
Hardened lxml parsing and local-name lookups.

Fiscal XML arrives both bare (``<NFe xmlns="http://www.portalfiscal.inf.br/nfe">``)
and wrapped in authorization envelopes (``nfeProc``, ``cteProc``).  Every
lookup here matches on local name so the namespace and wrapper never matter.
"""

from __future__ import annotations

from lxml import etree

_PARSER_OPTIONS = dict(
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
    huge_tree=False,
)


def parse_xml(raw: bytes | str) -> etree._Element:
    """Parse raw document bytes.

    Raises:
        etree.XMLSyntaxError: malformed or empty markup.
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    parser = etree.XMLParser(**_PARSER_OPTIONS)
    return etree.fromstring(raw, parser)


def local_name(element: etree._Element) -> str:
    return etree.QName(element).localname


def find_first(element: etree._Element, name: str) -> etree._Element | None:
    """First element named ``name`` in document order, the element itself included."""
    found = element.xpath("descendant-or-self::*[local-name()=$name]", name=name)
    return found[0] if found else None


def find_children(element: etree._Element, name: str) -> list[etree._Element]:
    return [
        child
        for child in element
        if isinstance(child.tag, str) and local_name(child) == name
    ]


def find_path(element: etree._Element, *names: str) -> etree._Element | None:
    """Follow direct children by local name, e.g. ``find_path(inf, "emit", "xNome")``."""
    current: etree._Element | None = element
    for name in names:
        if current is None:
            return None
        children = find_children(current, name)
        current = children[0] if children else None
    return current


def text_at(element: etree._Element, *names: str) -> str:
    """Stripped text at a child path, or "" when the path or text is absent."""
    node = find_path(element, *names)
    if node is None or node.text is None:
        return ""
    return node.text.strip()
