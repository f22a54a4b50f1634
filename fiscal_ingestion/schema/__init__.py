"""Subtype schemas and the XML normalizer."""

from fiscal_ingestion.schema.normalizer import normalize_document
from fiscal_ingestion.schema.subtypes import SUBTYPES, SubtypeSchema, schema_for

__all__ = ["SUBTYPES", "SubtypeSchema", "normalize_document", "schema_for"]
