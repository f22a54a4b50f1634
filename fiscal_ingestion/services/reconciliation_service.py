"""
Reconciliation service: apply a validated import to stock and payables.

Contract:
    complete_import is the only way into ``imported``.  Stock movements, the
    payable and the status flip share one SAVEPOINT, so either all of them
    are written or none is and the import stays ``validated``.  A second
    call fails the status precondition before touching anything.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fiscal_config import ImportPolicy, get_active_config
from fiscal_ingestion.collaborators import (
    Inventory,
    PayableLedger,
    PayableRequest,
    StockDirection,
)
from fiscal_ingestion.domain.state import ensure_completable
from fiscal_ingestion.domain.types import (
    RESOLVED_ITEM_STATUSES,
    CompletionResult,
    LineItemStatus,
)
from fiscal_ingestion.models.imports import DocumentImportModel
from fiscal_ingestion.services.import_store import ImportStore
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.exceptions import ReconciliationError
from fiscal_kernel.logging_config import LogContext, get_logger

logger = get_logger("ingestion.reconciliation")

REFERENCE_TYPE = "fiscal_import"


class ReconciliationService:
    """Applies stock movements and payables for validated imports."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ImportPolicy | None = None,
        inventory: Inventory | None = None,
        ledger: PayableLedger | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or get_active_config()
        if inventory is None:
            from fiscal_modules.inventory.service import SqlInventory

            inventory = SqlInventory(session, self._clock)
        if ledger is None:
            from fiscal_modules.ap.service import SqlPayableLedger

            ledger = SqlPayableLedger(session)
        self._inventory = inventory
        self._ledger = ledger
        self._store = ImportStore(session, self._clock)

    def complete_import(self, import_id: UUID, actor_id: UUID) -> CompletionResult:
        """
        Apply a validated import exactly once.

        Raises:
            ImportNotFoundError: unknown import.
            InvalidImportStatusError: import is not ``validated``.
            ReconciliationError: applying the effects failed; nothing was written.
        """
        with LogContext.bind(import_id=str(import_id), actor_id=str(actor_id)):
            record = self._store.get(import_id, for_update=True)
            ensure_completable(record.id, record.status)

            savepoint = self._session.begin_nested()
            try:
                inventory_updated = self._apply_stock(record, actor_id)
                financial_updated = self._apply_payable(record, actor_id)
                self._store.mark_imported(
                    record, inventory_updated, financial_updated, actor_id
                )
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                logger.error("import_completion_failed", exc_info=True)
                raise ReconciliationError(import_id, str(exc)) from exc

            logger.info(
                "import_completed",
                extra={
                    "inventory_updated": inventory_updated,
                    "financial_updated": financial_updated,
                },
            )
            return CompletionResult(
                success=True,
                message="Import completed successfully",
                inventory_updated=inventory_updated,
                financial_updated=financial_updated,
            )

    def _direction(self, record: DocumentImportModel) -> StockDirection:
        if self._policy.is_entry_document(record.document_type):
            return StockDirection.ENTRY
        return StockDirection.EXIT

    def _apply_stock(self, record: DocumentImportModel, actor_id: UUID) -> bool:
        """One stock change and one movement record per resolved item."""
        direction = self._direction(record)
        moved = 0
        for item in record.items:
            if LineItemStatus(item.status) not in RESOLVED_ITEM_STATUSES:
                continue
            if item.matched_product_id is None:
                continue
            quantity = Decimal(item.quantity)
            if direction is StockDirection.ENTRY:
                self._inventory.increase_stock(item.matched_product_id, quantity)
            else:
                self._inventory.decrease_stock(item.matched_product_id, quantity)
            self._inventory.record_transaction(
                product_id=item.matched_product_id,
                direction=direction,
                quantity=quantity,
                reference_id=record.id,
                reference_type=REFERENCE_TYPE,
                notes=(
                    f"{record.document_type.upper()} {record.document_number} "
                    f"line {item.line_number}"
                ),
                actor_id=actor_id,
            )
            moved += 1
        logger.info(
            "stock_applied",
            extra={"direction": direction.value, "movement_count": moved},
        )
        return moved > 0

    def _apply_payable(self, record: DocumentImportModel, actor_id: UUID) -> bool:
        """Entry documents raise a payable to the issuer; exit documents none."""
        if self._direction(record) is not StockDirection.ENTRY:
            return False
        due_date = record.local_document_date() + timedelta(days=self._policy.payable_due_days)
        self._ledger.create_payable(
            PayableRequest(
                creditor_name=record.issuer_name,
                description=f"Fiscal document {record.document_number}",
                amount=Decimal(record.total_value),
                due_date=due_date,
                document_number=record.document_number,
                reference_id=record.id,
                reference_type=REFERENCE_TYPE,
            ),
            actor_id,
        )
        return True
