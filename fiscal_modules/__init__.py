"""
Fiscal Modules.

SQLAlchemy implementations of the collaborators the import pipeline talks
to through ``fiscal_ingestion.collaborators``:

- Inventory: product catalog, stock levels, stock movement log
- AP: accounts payable raised by entry documents
"""
