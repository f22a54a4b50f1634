"""Fiscal import ORM models (document imports and their line items)."""

from fiscal_ingestion.models.imports import DocumentImportModel, LineItemModel

__all__ = ["DocumentImportModel", "LineItemModel"]
