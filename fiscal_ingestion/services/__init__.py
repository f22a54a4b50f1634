"""Fiscal import services (import, manual resolution, reconciliation)."""

from fiscal_ingestion.services.import_service import ImportService
from fiscal_ingestion.services.import_store import ImportStore
from fiscal_ingestion.services.reconciliation_service import ReconciliationService

__all__ = ["ImportService", "ImportStore", "ReconciliationService"]
