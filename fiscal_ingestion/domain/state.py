"""
Document import lifecycle.

The parent status is derived from the item statuses instead of being set by
individual operations:

    pending ──match──> processing ──resolve all──> validated ──complete──> imported
       │
       └── matching pass failed ──> error

Manual resolution recomputes the status of any non-imported record, so an
``error`` record can still be recovered by mapping its items.  An import
with nothing unresolved (including one with no items at all) is ``validated``.
``imported`` is terminal and only reachable from ``validated``.
"""

from __future__ import annotations

from typing import Iterable

from fiscal_ingestion.domain.types import (
    UNRESOLVED_ITEM_STATUSES,
    ImportStatus,
    LineItemStatus,
)
from fiscal_kernel.exceptions import InvalidImportStatusError

MUTABLE_STATUSES = frozenset(
    {
        ImportStatus.PENDING,
        ImportStatus.PROCESSING,
        ImportStatus.VALIDATED,
        ImportStatus.ERROR,
    }
)


def derive_import_status(item_statuses: Iterable[LineItemStatus]) -> ImportStatus:
    """Status implied by the items: validated when none is pending or error."""
    for status in item_statuses:
        if LineItemStatus(status) in UNRESOLVED_ITEM_STATUSES:
            return ImportStatus.PROCESSING
    return ImportStatus.VALIDATED


def ensure_mutable(import_id, status: ImportStatus | str) -> None:
    """Reject item-level changes on an imported record."""
    if ImportStatus(status) not in MUTABLE_STATUSES:
        raise InvalidImportStatusError(
            import_id,
            ImportStatus(status).value,
            expected=[s.value for s in sorted(MUTABLE_STATUSES, key=lambda s: s.value)],
        )


def ensure_completable(import_id, status: ImportStatus | str) -> None:
    """Only a validated import may be completed."""
    if ImportStatus(status) is not ImportStatus.VALIDATED:
        raise InvalidImportStatusError(
            import_id,
            ImportStatus(status).value,
            expected=[ImportStatus.VALIDATED.value],
        )
