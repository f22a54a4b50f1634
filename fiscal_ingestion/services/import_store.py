"""
ImportStore -- persistence and lifecycle for document imports.

Every status change goes through this class.  Item mutations are followed by
``recompute_status``, which derives the parent status from the items, so no
caller sets ``processing`` or ``validated`` by hand.  The store only flushes;
transactions belong to the caller.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from fiscal_ingestion.domain.state import (
    derive_import_status,
    ensure_completable,
    ensure_mutable,
)
from fiscal_ingestion.domain.types import (
    UNRESOLVED_ITEM_STATUSES,
    ImportFilters,
    ImportStatus,
    LineItemStatus,
    MatchSource,
    NormalizedDocument,
    SourceType,
)
from fiscal_ingestion.matching.engine import MatchOutcome
from fiscal_ingestion.models.imports import DocumentImportModel, LineItemModel
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.domain.dtos import ValidationError
from fiscal_kernel.exceptions import (
    DuplicateDocumentError,
    ImportNotFoundError,
    LineItemNotFoundError,
)
from fiscal_kernel.logging_config import get_logger

logger = get_logger("ingestion.import_store")


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _offset_minutes(value: datetime) -> int | None:
    offset = value.utcoffset()
    if offset is None:
        return None
    return int(offset.total_seconds()) // 60


class ImportStore:
    """Owns DocumentImportModel / LineItemModel rows and their state machine."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def find_by_key(self, document_key: str) -> DocumentImportModel | None:
        stmt = select(DocumentImportModel).where(
            DocumentImportModel.document_key == document_key
        )
        return self._session.scalars(stmt).first()

    def create_import(
        self,
        document: NormalizedDocument,
        source_type: SourceType,
        actor_id: UUID,
        source_name: str | None = None,
        source_url: str | None = None,
        warnings: Sequence[ValidationError] = (),
    ) -> DocumentImportModel:
        """
        Persist a new import in ``pending`` with all of its items.

        Raises:
            DuplicateDocumentError: the document key is already imported.
        """
        envelope = document.envelope
        if envelope.document_key:
            existing = self.find_by_key(envelope.document_key)
            if existing is not None:
                raise DuplicateDocumentError(envelope.document_key, existing.id)

        now = self._clock.now()
        import_id = uuid4()
        record = DocumentImportModel(
            id=import_id,
            source_type=source_type.value,
            source_name=source_name,
            source_url=source_url,
            document_type=envelope.document_type.value,
            document_number=envelope.document_number,
            document_key=envelope.document_key,
            document_date=_utc(envelope.document_date),
            document_utc_offset_minutes=_offset_minutes(envelope.document_date),
            issuer_name=envelope.issuer_name,
            issuer_document=envelope.issuer_document,
            total_value=envelope.total_value,
            status=ImportStatus.PENDING.value,
            updated_inventory=False,
            updated_financial=False,
            warnings=[w.to_dict() for w in warnings] or None,
            created_at=now,
            created_by_id=actor_id,
        )
        record.items = [
            LineItemModel(
                document_import_id=import_id,
                line_number=draft.line_number,
                product_code=draft.product_code,
                description=draft.description,
                quantity=draft.quantity,
                unit=draft.unit,
                unit_value=draft.unit_value,
                total_value=draft.total_value,
                tax_codes=dict(draft.tax_codes),
                status=LineItemStatus.PENDING.value,
                created_at=now,
                created_by_id=actor_id,
            )
            for draft in document.items
        ]
        self._session.add(record)
        try:
            self._session.flush()
        except IntegrityError as exc:
            if envelope.document_key:
                raise DuplicateDocumentError(envelope.document_key) from exc
            raise

        logger.info(
            "import_created",
            extra={
                "import_id": str(import_id),
                "document_type": envelope.document_type.value,
                "document_number": envelope.document_number,
                "item_count": len(record.items),
                "warning_count": len(warnings),
            },
        )
        return record

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, import_id: UUID, for_update: bool = False) -> DocumentImportModel:
        stmt = (
            select(DocumentImportModel)
            .where(DocumentImportModel.id == import_id)
            .options(selectinload(DocumentImportModel.items))
        )
        if for_update:
            stmt = stmt.with_for_update()
        record = self._session.scalars(stmt).first()
        if record is None:
            raise ImportNotFoundError(import_id)
        return record

    def get_item(self, record: DocumentImportModel, item_id: UUID) -> LineItemModel:
        for item in record.items:
            if item.id == item_id:
                return item
        raise LineItemNotFoundError(record.id, item_id)

    def list_imports(self, filters: ImportFilters | None = None) -> list[DocumentImportModel]:
        filters = filters or ImportFilters()
        stmt = select(DocumentImportModel).options(
            selectinload(DocumentImportModel.items)
        )
        if filters.status is not None:
            stmt = stmt.where(DocumentImportModel.status == ImportStatus(filters.status).value)
        if filters.document_type is not None:
            stmt = stmt.where(
                DocumentImportModel.document_type == filters.document_type.value
            )
        if filters.start_date is not None:
            stmt = stmt.where(DocumentImportModel.document_date >= _utc(filters.start_date))
        if filters.end_date is not None:
            stmt = stmt.where(DocumentImportModel.document_date <= _utc(filters.end_date))
        if filters.search:
            needle = filters.search.lower()
            stmt = stmt.where(
                or_(
                    func.lower(DocumentImportModel.document_number).contains(
                        needle, autoescape=True
                    ),
                    func.lower(DocumentImportModel.issuer_name).contains(
                        needle, autoescape=True
                    ),
                )
            )
        stmt = stmt.order_by(
            DocumentImportModel.created_at.desc(), DocumentImportModel.id
        )
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)
        return list(self._session.scalars(stmt).all())

    # ------------------------------------------------------------------
    # Item mutations
    # ------------------------------------------------------------------

    def apply_match(
        self,
        item: LineItemModel,
        outcome: MatchOutcome,
        actor_id: UUID,
    ) -> None:
        item.status = outcome.status.value
        item.matched_product_id = outcome.product_id if outcome.is_match else None
        item.match_confidence = outcome.confidence
        item.match_source = outcome.source.value if outcome.source else None
        item.error_details = outcome.error_details
        item.updated_by_id = actor_id

    def resolve_item(
        self,
        record: DocumentImportModel,
        item: LineItemModel,
        product_id: UUID,
        source: MatchSource,
        actor_id: UUID,
    ) -> None:
        """Force an item to a product with full confidence."""
        ensure_mutable(record.id, record.status)
        item.status = (
            LineItemStatus.CREATED.value
            if source is MatchSource.CREATED
            else LineItemStatus.MATCHED.value
        )
        item.matched_product_id = product_id
        item.match_confidence = 1.0
        item.match_source = source.value
        item.error_details = None
        item.updated_by_id = actor_id
        logger.info(
            "item_resolved",
            extra={
                "import_id": str(record.id),
                "item_id": str(item.id),
                "product_id": str(product_id),
                "match_source": source.value,
            },
        )

    # ------------------------------------------------------------------
    # Parent status
    # ------------------------------------------------------------------

    def _set_status(
        self,
        record: DocumentImportModel,
        status: ImportStatus,
        actor_id: UUID,
    ) -> None:
        previous = record.status
        record.status = status.value
        record.updated_by_id = actor_id
        if previous != status.value:
            logger.info(
                "import_status_changed",
                extra={
                    "import_id": str(record.id),
                    "from_status": previous,
                    "to_status": status.value,
                },
            )

    def recompute_status(
        self,
        record: DocumentImportModel,
        actor_id: UUID,
        allow_validate: bool = True,
    ) -> ImportStatus:
        """
        Derive the parent status from its items and store it.

        With ``allow_validate=False`` a fully resolved record stops at
        ``processing``; a later recompute with the default promotes it.
        """
        ensure_mutable(record.id, record.status)
        status = derive_import_status(
            LineItemStatus(item.status) for item in record.items
        )
        if status is ImportStatus.VALIDATED and not allow_validate:
            status = ImportStatus.PROCESSING
        if record.processing_date is None:
            record.processing_date = self._clock.now()
        record.error_details = None
        self._set_status(record, status, actor_id)
        self._session.flush()
        return status

    def mark_error(
        self,
        record: DocumentImportModel,
        details: str,
        actor_id: UUID,
    ) -> None:
        ensure_mutable(record.id, record.status)
        record.error_details = details
        self._set_status(record, ImportStatus.ERROR, actor_id)
        self._session.flush()

    def mark_imported(
        self,
        record: DocumentImportModel,
        inventory_updated: bool,
        financial_updated: bool,
        actor_id: UUID,
    ) -> None:
        """The single transition into ``imported``; effect flags are written here only."""
        ensure_completable(record.id, record.status)
        record.updated_inventory = inventory_updated
        record.updated_financial = financial_updated
        record.import_date = self._clock.now()
        self._set_status(record, ImportStatus.IMPORTED, actor_id)
        self._session.flush()

    def pending_item_count(self, record: DocumentImportModel) -> int:
        return sum(
            1
            for item in record.items
            if LineItemStatus(item.status) in UNRESOLVED_ITEM_STATUSES
        )
