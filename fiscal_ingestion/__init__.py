"""
fiscal_ingestion -- Fiscal document (NF-e, NFC-e, CT-e, MDF-e) import.

Validates and normalizes XML documents, matches their line items against the
product catalog, and applies stock movements and payables exactly once per
document.

Architecture:
    fiscal_ingestion/ is a top-level package.  It reaches the catalog,
    inventory and payables only through the protocols in
    fiscal_ingestion.collaborators; fiscal_modules provides SQLAlchemy
    implementations.
"""
