"""
Import service: validate -> normalize -> persist -> match.

Entry points for files, in-memory bytes, URLs and batches of files, plus the
manual resolution operations (item mappings, product creation) that move an
import toward ``validated``.

Every import runs inside its own SAVEPOINT: a failure at any step leaves no
record behind and, in a batch, never affects the other files.
Uses structured logging (LogContext, get_logger("ingestion.*")).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence
from uuid import UUID, uuid4

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fiscal_config import ImportPolicy, TotalsMismatchPolicy, get_active_config
from fiscal_ingestion.collaborators import Catalog
from fiscal_ingestion.domain.state import ensure_mutable
from fiscal_ingestion.domain.types import (
    BatchImportResult,
    DocumentImport,
    FileImportResult,
    ImportFilters,
    ImportStatus,
    ItemMapping,
    LineItem,
    MappingValidationResult,
    MatchSource,
    SourceFile,
    SourceType,
)
from fiscal_ingestion.domain.validators import check_declared_total, validate_document
from fiscal_ingestion.matching.engine import ItemMatcher
from fiscal_ingestion.models.imports import DocumentImportModel
from fiscal_ingestion.schema.normalizer import normalize_document
from fiscal_ingestion.services.import_store import ImportStore
from fiscal_kernel.domain.clock import Clock, SystemClock
from fiscal_kernel.exceptions import (
    DocumentFetchError,
    DocumentImportError,
    FiscalKernelError,
    ImportOperationError,
    InvalidDocumentError,
)
from fiscal_kernel.logging_config import LogContext, get_logger

logger = get_logger("ingestion.import_service")

_XML_ACCEPT = "application/xml, text/xml"


def _name_from_url(url: str) -> str | None:
    path = httpx.URL(url).path
    name = path.rstrip("/").rsplit("/", 1)[-1]
    return name or None


class ImportService:
    """Orchestrates validate -> normalize -> persist -> match. Uses session, clock, policy, catalog."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ImportPolicy | None = None,
        catalog: Catalog | None = None,
        http_client: httpx.Client | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or get_active_config()
        if catalog is None:
            from fiscal_modules.inventory.service import SqlCatalog

            catalog = SqlCatalog(session)
        self._catalog = catalog
        self._http = http_client
        self._store = ImportStore(session, self._clock)
        self._matcher = ItemMatcher(
            catalog,
            threshold=self._policy.auto_accept_threshold,
            search_words=self._policy.fuzzy_search_words,
            candidate_limit=self._policy.fuzzy_candidate_limit,
        )

    # ------------------------------------------------------------------
    # Import entry points
    # ------------------------------------------------------------------

    def import_xml_file(
        self,
        source: SourceFile | Path | str,
        actor_id: UUID,
    ) -> DocumentImport:
        """Import one document from an in-memory file or a path on disk."""
        if isinstance(source, SourceFile):
            return self.import_xml_bytes(source.content, actor_id, source_name=source.name)

        path = Path(source)
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise ImportOperationError("read file", f"{path.name}: {exc}") from exc
        return self.import_xml_bytes(content, actor_id, source_name=path.name)

    def import_xml_bytes(
        self,
        content: bytes | str,
        actor_id: UUID,
        source_name: str | None = None,
    ) -> DocumentImport:
        return self._import(
            content,
            SourceType.FILE,
            actor_id,
            source_name=source_name,
        )

    def import_xml_from_url(self, url: str, actor_id: UUID) -> DocumentImport:
        """Download a document and import it; the URL is kept on the record."""
        content = self._fetch(url)
        return self._import(
            content,
            SourceType.URL,
            actor_id,
            source_name=_name_from_url(url),
            source_url=url,
        )

    def import_multiple_xml_files(
        self,
        files: Iterable[SourceFile | Path | str],
        actor_id: UUID,
    ) -> BatchImportResult:
        """
        Import files one after another.

        A failing file is recorded in the results and processing continues;
        exactly one result is produced per input file.
        """
        batch_id = uuid4()
        results: list[FileImportResult] = []
        with LogContext.bind(
            correlation_id=str(batch_id), producer="ingestion", actor_id=str(actor_id)
        ):
            for source in files:
                name = source.name if isinstance(source, SourceFile) else Path(source).name
                try:
                    document = self.import_xml_file(source, actor_id)
                except Exception as exc:
                    logger.warning(
                        "batch_file_failed",
                        extra={
                            "file": name,
                            "error_code": getattr(exc, "code", type(exc).__name__),
                            "error": str(exc),
                        },
                    )
                    results.append(FileImportResult(file=name, success=False, message=str(exc)))
                    continue
                results.append(
                    FileImportResult(
                        file=name,
                        success=True,
                        message="Imported successfully",
                        id=document.id,
                    )
                )

            succeeded = sum(1 for r in results if r.success)
            logger.info(
                "batch_import_finished",
                extra={
                    "file_count": len(results),
                    "success": succeeded,
                    "failed": len(results) - succeeded,
                },
            )
        return BatchImportResult(
            success=succeeded,
            failed=len(results) - succeeded,
            results=tuple(results),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_imported_documents(
        self,
        filters: ImportFilters | None = None,
    ) -> list[DocumentImport]:
        return [record.to_dto() for record in self._store.list_imports(filters)]

    def get_import(self, import_id: UUID) -> DocumentImport:
        return self._store.get(import_id).to_dto()

    # ------------------------------------------------------------------
    # Manual resolution
    # ------------------------------------------------------------------

    def validate_item_mappings(
        self,
        import_id: UUID,
        mappings: Sequence[ItemMapping],
        actor_id: UUID,
    ) -> MappingValidationResult:
        """
        Apply manual item -> product mappings and re-derive the import status.

        An empty ``mappings`` list only re-checks the status.  All mappings
        are applied or none is.
        """
        with LogContext.bind(import_id=str(import_id), actor_id=str(actor_id)):
            record = self._store.get(import_id)
            ensure_mutable(record.id, record.status)

            savepoint = self._session.begin_nested()
            try:
                for mapping in mappings:
                    item = self._store.get_item(record, mapping.item_id)
                    if self._catalog.get_product(mapping.product_id) is None:
                        raise ImportOperationError(
                            "map item",
                            f"product {mapping.product_id} not found in catalog",
                        )
                    self._store.resolve_item(
                        record, item, mapping.product_id, MatchSource.MANUAL, actor_id
                    )
                status = self._store.recompute_status(record, actor_id)
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                raise

            pending = self._store.pending_item_count(record)
            if status is ImportStatus.VALIDATED:
                message = "All items resolved; import validated"
            else:
                message = f"{pending} item(s) still need a product"
            logger.info(
                "item_mappings_validated",
                extra={
                    "mapping_count": len(mappings),
                    "status": status.value,
                    "pending_items": pending,
                },
            )
            return MappingValidationResult(
                success=True,
                message=message,
                status=status,
                pending_items=pending,
            )

    def create_product_for_item(
        self,
        import_id: UUID,
        item_id: UUID,
        actor_id: UUID,
    ) -> LineItem:
        """Register a catalog product from a line item and resolve the item to it."""
        with LogContext.bind(import_id=str(import_id), actor_id=str(actor_id)):
            record = self._store.get(import_id)
            ensure_mutable(record.id, record.status)
            item = self._store.get_item(record, item_id)

            if item.product_code and self._catalog.find_by_sku_or_barcode(item.product_code):
                raise ImportOperationError(
                    "create product",
                    f"a product with code {item.product_code} already exists; "
                    "map the item to it instead",
                )

            savepoint = self._session.begin_nested()
            try:
                product = self._catalog.create_product(
                    sku=item.product_code,
                    name=item.description,
                    unit=item.unit,
                    actor_id=actor_id,
                )
                self._store.resolve_item(
                    record, item, product.id, MatchSource.CREATED, actor_id
                )
                self._store.recompute_status(record, actor_id)
                savepoint.commit()
            except IntegrityError as exc:
                savepoint.rollback()
                raise ImportOperationError(
                    "create product",
                    f"a product with code {item.product_code} already exists "
                    "(possibly inactive); map the item to it instead",
                ) from exc
            except Exception:
                savepoint.rollback()
                raise

            return item.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch(self, url: str) -> bytes:
        try:
            if self._http is not None:
                response = self._http.get(url, headers={"Accept": _XML_ACCEPT})
            else:
                with httpx.Client(
                    timeout=self._policy.fetch_timeout_seconds,
                    follow_redirects=True,
                ) as client:
                    response = client.get(url, headers={"Accept": _XML_ACCEPT})
        except httpx.HTTPError as exc:
            logger.warning("document_fetch_failed", extra={"url": url, "error": str(exc)})
            raise DocumentFetchError(url, None, str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            logger.warning(
                "document_fetch_failed",
                extra={"url": url, "status_code": response.status_code},
            )
            raise DocumentFetchError(url, response.status_code, response.reason_phrase)

        logger.info(
            "document_fetched",
            extra={"url": url, "status_code": response.status_code, "size": len(response.content)},
        )
        return response.content

    def _import(
        self,
        content: bytes | str,
        source_type: SourceType,
        actor_id: UUID,
        source_name: str | None = None,
        source_url: str | None = None,
    ) -> DocumentImport:
        # A batch binds its own correlation id; single imports get a fresh one.
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id, producer="ingestion", actor_id=str(actor_id)
        ):
            validation = validate_document(content)
            if not validation.is_valid:
                logger.warning(
                    "document_rejected",
                    extra={
                        "source_name": source_name,
                        "error_codes": [e.code for e in validation.errors],
                    },
                )
                raise InvalidDocumentError(validation.errors)

            document = normalize_document(content, self._clock)

            warnings = list(validation.warnings)
            if self._policy.totals_mismatch is not TotalsMismatchPolicy.IGNORE:
                mismatch = check_declared_total(document, self._policy.totals_tolerance)
                if mismatch is not None:
                    if self._policy.totals_mismatch is TotalsMismatchPolicy.REJECT:
                        logger.warning("document_rejected", extra={"error_codes": [mismatch.code]})
                        raise InvalidDocumentError([mismatch])
                    warnings.append(mismatch)

            savepoint = self._session.begin_nested()
            try:
                record = self._store.create_import(
                    document,
                    source_type,
                    actor_id,
                    source_name=source_name,
                    source_url=source_url,
                    warnings=warnings,
                )
                with LogContext.bind(import_id=str(record.id)):
                    self._match_items(record, actor_id)
                savepoint.commit()
            except FiscalKernelError:
                savepoint.rollback()
                raise
            except Exception as exc:
                savepoint.rollback()
                logger.error("import_failed", extra={"source_name": source_name}, exc_info=True)
                raise ImportOperationError("import document", str(exc)) from exc

            return record.to_dto()

    def _match_items(self, record: DocumentImportModel, actor_id: UUID) -> None:
        """
        Run the matcher over every item, then derive the parent status.

        A failure of the pass as a whole (not of a single catalog lookup,
        which the matcher confines to its item) marks the import ``error``.
        """
        try:
            for item in record.items:
                outcome = self._matcher.match(item)
                self._store.apply_match(item, outcome, actor_id)
                logger.info(
                    "item_matched",
                    extra={
                        "line_number": item.line_number,
                        "item_status": outcome.status.value,
                        "match_source": outcome.source.value if outcome.source else None,
                        "confidence": outcome.confidence,
                    },
                )
            self._store.recompute_status(
                record,
                actor_id,
                allow_validate=self._policy.auto_validate_resolved_imports,
            )
        except DocumentImportError:
            raise
        except Exception as exc:
            logger.error("item_matching_failed", exc_info=True)
            self._store.mark_error(
                record, f"Failed to process document items: {exc}", actor_id
            )
