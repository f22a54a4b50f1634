"""
Accounts Payable ORM Models (``fiscal_modules.ap.orm``).

Responsibility
--------------
Persistence for payables raised by entry fiscal documents.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``fiscal_kernel.db.base``.
MUST NOT be imported by ``fiscal_kernel``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fiscal_kernel.db.base import TrackedBase


class PayableModel(TrackedBase):
    """
    ORM model for an account payable.

    Guarantees:
        - amount uses Decimal (Numeric(38,9) via type_annotation_map).
        - reference_id/reference_type trace the payable to its origin.
    """

    __tablename__ = "accounts_payable"

    __table_args__ = (
        Index("idx_ap_payables_due_date", "due_date"),
        Index("idx_ap_payables_status", "payment_status"),
        Index("idx_ap_payables_reference", "reference_type", "reference_id"),
    )

    creditor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")
    document_number: Mapped[str | None] = mapped_column(String(60), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PayableModel {self.document_number} "
            f"status={self.payment_status} amount={self.amount}>"
        )
