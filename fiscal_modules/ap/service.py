"""
AP Module Service (``fiscal_modules.ap.service``).

SQLAlchemy implementation of the ``PayableLedger`` protocol.  Flushes only;
reconciliation runs it inside its SAVEPOINT.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fiscal_ingestion.collaborators import PayableRequest
from fiscal_kernel.logging_config import get_logger
from fiscal_modules.ap.orm import PayableModel

logger = get_logger("modules.ap")


class SqlPayableLedger:
    def __init__(self, session: Session):
        self._session = session

    def create_payable(self, request: PayableRequest, actor_id: UUID) -> UUID:
        payable = PayableModel(
            creditor_name=request.creditor_name,
            description=request.description,
            amount=request.amount,
            due_date=request.due_date,
            payment_status=request.status,
            document_number=request.document_number,
            reference_id=request.reference_id,
            reference_type=request.reference_type,
            created_by_id=actor_id,
        )
        self._session.add(payable)
        self._session.flush()
        logger.info(
            "payable_created",
            extra={
                "payable_id": str(payable.id),
                "amount": str(request.amount),
                "due_date": request.due_date.isoformat(),
                "reference_id": str(request.reference_id),
            },
        )
        return payable.id

    def payables_for(self, reference_id: UUID) -> list[PayableModel]:
        stmt = (
            select(PayableModel)
            .where(PayableModel.reference_id == reference_id)
            .order_by(PayableModel.due_date, PayableModel.id)
        )
        return list(self._session.scalars(stmt).all())
