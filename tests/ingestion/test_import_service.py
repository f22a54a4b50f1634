"""Tests for ImportService: validate -> normalize -> persist -> match."""

from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from fiscal_config import ImportPolicy, TotalsMismatchPolicy
from fiscal_ingestion.domain.types import (
    DocumentType,
    ImportFilters,
    ImportStatus,
    ItemMapping,
    LineItemStatus,
    MatchSource,
    SourceFile,
    SourceType,
)
from fiscal_ingestion.services.import_service import ImportService
from fiscal_ingestion.services.reconciliation_service import ReconciliationService
from fiscal_kernel.exceptions import (
    DocumentFetchError,
    DuplicateDocumentError,
    ImportNotFoundError,
    ImportOperationError,
    InvalidDocumentError,
    InvalidImportStatusError,
    LineItemNotFoundError,
)
from fiscal_modules.inventory.service import SqlCatalog
from tests.fixtures.xml_documents import (
    MALFORMED_XML,
    Item,
    build_cte,
    build_mdfe,
    build_nfe,
    make_key,
)

SHARED = "farinha trigo especial tipo um pacote cinco"


@pytest.fixture
def service(session, deterministic_clock, policy):
    return ImportService(session, clock=deterministic_clock, policy=policy)


def _service_with(session, clock, **policy_overrides):
    return ImportService(session, clock=clock, policy=ImportPolicy(**policy_overrides))


def _import_count(service) -> int:
    return len(service.get_imported_documents())


class TestImportFromBytes:
    def test_two_exact_matches_validate(self, service, make_product, test_actor_id):
        flour = make_product("Farinha de trigo", sku="FAR-001")
        sugar = make_product("Acucar cristal", barcode="7891000100103")
        raw = build_nfe(
            [Item("FAR-001", "Farinha trigo 1kg"), Item("7891000100103", "Acucar 5kg")],
            key=make_key(100),
        )

        result = service.import_xml_bytes(raw, test_actor_id, source_name="nota.xml")

        assert result.status is ImportStatus.VALIDATED
        assert result.pending_items == 0
        assert [i.matched_product_id for i in result.items] == [flour.id, sugar.id]
        assert all(i.match_source is MatchSource.EXACT for i in result.items)
        assert all(i.match_confidence == 1.0 for i in result.items)
        assert result.source_type is SourceType.FILE
        assert result.source_name == "nota.xml"
        assert result.processing_date is not None

    def test_without_auto_validation_stops_at_processing(
        self, session, deterministic_clock, make_product, test_actor_id
    ):
        make_product("Farinha de trigo", sku="FAR-001")
        service = _service_with(
            session, deterministic_clock, auto_validate_resolved_imports=False
        )
        result = service.import_xml_bytes(
            build_nfe([Item("FAR-001", "Farinha")], key=make_key(101)), test_actor_id
        )
        assert result.status is ImportStatus.PROCESSING
        assert result.pending_items == 0

        check = service.validate_item_mappings(result.id, [], test_actor_id)
        assert check.status is ImportStatus.VALIDATED
        assert check.pending_items == 0
        assert service.get_import(result.id).status is ImportStatus.VALIDATED

    @pytest.mark.parametrize(
        "raw, document_type",
        [(build_cte(key=make_key(102)), DocumentType.CTE), (build_mdfe(key=make_key(103)), DocumentType.MDFE)],
    )
    def test_documents_without_items_validate_immediately(
        self, service, test_actor_id, raw, document_type
    ):
        result = service.import_xml_bytes(raw, test_actor_id)
        assert result.document_type is document_type
        assert result.items == ()
        assert result.status is ImportStatus.VALIDATED

    def test_borderline_similarity_stays_pending(self, service, make_product, test_actor_id):
        make_product(SHARED + " quilos premium")
        result = service.import_xml_bytes(
            build_nfe([Item("UNKNOWN-1", SHARED + " kg")], key=make_key(104)), test_actor_id
        )

        (item,) = result.items
        assert item.status is LineItemStatus.PENDING
        assert item.matched_product_id is None
        assert item.match_confidence == pytest.approx(0.7)
        assert result.status is ImportStatus.PROCESSING

    def test_fuzzy_match_above_threshold(self, service, make_product, test_actor_id):
        oil = make_product("Oleo de soja refinado 900ml")
        result = service.import_xml_bytes(
            build_nfe([Item("X-1", "Oleo de soja refinado 900ml")], key=make_key(105)),
            test_actor_id,
        )
        (item,) = result.items
        assert item.status is LineItemStatus.MATCHED
        assert item.match_source is MatchSource.FUZZY
        assert item.matched_product_id == oil.id

    def test_missing_key_is_a_warning(self, service, test_actor_id):
        result = service.import_xml_bytes(build_nfe([Item("X-1", "Cafe")], key=None), test_actor_id)
        assert result.document_key is None
        assert [w.code for w in result.warnings] == ["MISSING_DOCUMENT_KEY"]

    def test_malformed_xml_persists_nothing(self, service, test_actor_id):
        with pytest.raises(InvalidDocumentError) as exc_info:
            service.import_xml_bytes(MALFORMED_XML, test_actor_id)
        assert exc_info.value.error_codes == ("INVALID_XML",)
        assert _import_count(service) == 0

    def test_duplicate_key(self, service, test_actor_id):
        raw = build_nfe([Item("X-1", "Cafe")], key=make_key(106))
        first = service.import_xml_bytes(raw, test_actor_id)

        with pytest.raises(DuplicateDocumentError) as exc_info:
            service.import_xml_bytes(raw, test_actor_id)
        assert exc_info.value.existing_import_id == first.id
        assert _import_count(service) == 1

    def test_events_are_logged_with_context(self, service, test_actor_id, captured_logs):
        result = service.import_xml_bytes(
            build_nfe([Item("X-1", "Cafe")], key=make_key(107)), test_actor_id
        )
        logs = captured_logs()
        messages = [r["message"] for r in logs]
        assert "import_created" in messages
        assert "item_matched" in messages
        matched = next(r for r in logs if r["message"] == "item_matched")
        assert matched["import_id"] == str(result.id)
        assert matched["actor_id"] == str(test_actor_id)
        assert "correlation_id" in matched


class TestTotalsPolicy:
    RAW = build_nfe([Item("X-1", "Cafe", unit_value="10.00")], key=make_key(110), total="999.00")

    def test_warn_keeps_the_import(self, service, test_actor_id):
        result = service.import_xml_bytes(self.RAW, test_actor_id)
        (warning,) = result.warnings
        assert warning.code == "TOTALS_MISMATCH"
        assert warning.details["declared_total"] == "999.00"
        assert result.total_value == Decimal("999.00")

    def test_reject_persists_nothing(self, session, deterministic_clock, test_actor_id):
        service = _service_with(
            session, deterministic_clock, totals_mismatch=TotalsMismatchPolicy.REJECT
        )
        with pytest.raises(InvalidDocumentError) as exc_info:
            service.import_xml_bytes(self.RAW, test_actor_id)
        assert exc_info.value.error_codes == ("TOTALS_MISMATCH",)
        assert _import_count(service) == 0

    def test_ignore(self, session, deterministic_clock, test_actor_id):
        service = _service_with(
            session, deterministic_clock, totals_mismatch=TotalsMismatchPolicy.IGNORE
        )
        assert service.import_xml_bytes(self.RAW, test_actor_id).warnings == ()


class TestImportFromFile:
    def test_path_on_disk(self, service, tmp_path, test_actor_id):
        path = tmp_path / "entrada-55.xml"
        path.write_bytes(build_nfe([Item("X-1", "Cafe")], key=make_key(120)))

        result = service.import_xml_file(path, test_actor_id)
        assert result.source_name == "entrada-55.xml"
        assert result.source_type is SourceType.FILE

    def test_missing_path(self, service, tmp_path, test_actor_id):
        with pytest.raises(ImportOperationError) as exc_info:
            service.import_xml_file(tmp_path / "absent.xml", test_actor_id)
        assert exc_info.value.operation == "read file"


class TestBatchImport:
    def test_one_bad_file_does_not_stop_the_batch(self, service, test_actor_id):
        files = [
            SourceFile("a.xml", build_nfe([Item("X-1", "Cafe")], key=make_key(130))),
            SourceFile("b.xml", MALFORMED_XML),
            SourceFile("c.xml", build_cte(key=make_key(131))),
        ]

        batch = service.import_multiple_xml_files(files, test_actor_id)

        assert batch.success == 2
        assert batch.failed == 1
        assert [r.file for r in batch.results] == ["a.xml", "b.xml", "c.xml"]
        assert [r.success for r in batch.results] == [True, False, True]
        assert batch.results[0].message == "Imported successfully"
        assert batch.results[0].id is not None
        assert batch.results[1].id is None
        assert batch.results[1].message.startswith("Invalid document")
        assert _import_count(service) == 2

    def test_duplicate_inside_batch(self, service, test_actor_id):
        raw = build_nfe([Item("X-1", "Cafe")], key=make_key(132))
        batch = service.import_multiple_xml_files(
            [SourceFile("a.xml", raw), SourceFile("a-copy.xml", raw)], test_actor_id
        )
        assert (batch.success, batch.failed) == (1, 1)
        assert "already imported" in batch.results[1].message

    def test_empty_batch(self, service, test_actor_id):
        batch = service.import_multiple_xml_files([], test_actor_id)
        assert (batch.success, batch.failed, batch.results) == (0, 0, ())

    def test_batch_shares_a_correlation_id(self, service, test_actor_id, captured_logs):
        service.import_multiple_xml_files(
            [SourceFile("b.xml", MALFORMED_XML), SourceFile("c.xml", build_cte(key=make_key(133)))],
            test_actor_id,
        )
        logs = captured_logs()
        failed = next(r for r in logs if r["message"] == "batch_file_failed")
        finished = next(r for r in logs if r["message"] == "batch_import_finished")
        assert failed["file"] == "b.xml"
        assert failed["error_code"] == "INVALID_DOCUMENT_REJECTED"
        assert failed["correlation_id"] == finished["correlation_id"]
        created = next(r for r in logs if r["message"] == "import_created")
        rejected = next(r for r in logs if r["message"] == "document_rejected")
        assert created["correlation_id"] == finished["correlation_id"]
        assert rejected["correlation_id"] == finished["correlation_id"]
        assert finished["success"] == 1
        assert finished["failed"] == 1


class TestImportFromUrl:
    URL = "https://sefaz.example.test/documentos/nota-140.xml"

    def _service(self, session, clock, policy, handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return ImportService(session, clock=clock, policy=policy, http_client=client)

    def test_download_and_import(self, session, deterministic_clock, policy, test_actor_id):
        raw = build_nfe([Item("X-1", "Cafe")], key=make_key(140))
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=raw)

        service = self._service(session, deterministic_clock, policy, handler)
        result = service.import_xml_from_url(self.URL, test_actor_id)

        assert result.source_type is SourceType.URL
        assert result.source_url == self.URL
        assert result.source_name == "nota-140.xml"
        assert "xml" in seen[0].headers["accept"]

    def test_http_error_status(self, session, deterministic_clock, policy, test_actor_id):
        service = self._service(
            session, deterministic_clock, policy, lambda request: httpx.Response(404)
        )
        with pytest.raises(DocumentFetchError) as exc_info:
            service.import_xml_from_url(self.URL, test_actor_id)
        assert exc_info.value.status_code == 404
        assert _import_count(service) == 0

    def test_transport_failure(self, session, deterministic_clock, policy, test_actor_id):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = self._service(session, deterministic_clock, policy, handler)
        with pytest.raises(DocumentFetchError) as exc_info:
            service.import_xml_from_url(self.URL, test_actor_id)
        assert exc_info.value.status_code is None
        assert "connection refused" in str(exc_info.value)

    def test_downloaded_garbage_is_rejected(self, session, deterministic_clock, policy, test_actor_id):
        service = self._service(
            session, deterministic_clock, policy,
            lambda request: httpx.Response(200, content=b"<html>maintenance</html>"),
        )
        with pytest.raises(InvalidDocumentError):
            service.import_xml_from_url(self.URL, test_actor_id)


class TestQueries:
    def test_filters_and_limit(self, service, deterministic_clock, test_actor_id):
        for seed, issuer in [(150, "Moinho Paulista"), (151, "Laticinios Serra"), (152, "Moinho Gaucho")]:
            deterministic_clock.advance(60)
            service.import_xml_bytes(
                build_nfe([Item("X-1", "Cafe")], key=make_key(seed), issuer_name=issuer),
                test_actor_id,
            )
        service.import_xml_bytes(build_cte(key=make_key(153)), test_actor_id)

        moinhos = service.get_imported_documents(ImportFilters(search="MOINHO"))
        assert [d.issuer_name for d in moinhos] == ["Moinho Gaucho", "Moinho Paulista"]
        assert len(service.get_imported_documents(ImportFilters(limit=1))) == 1
        ctes = service.get_imported_documents(ImportFilters(document_type=DocumentType.CTE))
        assert [d.document_type for d in ctes] == [DocumentType.CTE]
        processing = service.get_imported_documents(ImportFilters(status=ImportStatus.PROCESSING))
        assert len(processing) == 3

    def test_unknown_import(self, service):
        with pytest.raises(ImportNotFoundError):
            service.get_import(uuid4())


class TestItemMappings:
    @pytest.fixture
    def two_pending(self, service, test_actor_id):
        return service.import_xml_bytes(
            build_nfe([Item("N-1", "Produto novo um"), Item("N-2", "Produto novo dois")], key=make_key(160)),
            test_actor_id,
        )

    def test_partial_mapping(self, service, two_pending, make_product, test_actor_id):
        product = make_product("Produto novo um", sku="OTHER-1")
        first = two_pending.items[0]

        result = service.validate_item_mappings(
            two_pending.id, [ItemMapping(first.id, product.id)], test_actor_id
        )

        assert result.success
        assert result.status is ImportStatus.PROCESSING
        assert result.pending_items == 1
        assert result.message == "1 item(s) still need a product"
        item = service.get_import(two_pending.id).items[0]
        assert item.status is LineItemStatus.MATCHED
        assert item.match_source is MatchSource.MANUAL
        assert item.match_confidence == 1.0

    def test_full_mapping_validates(self, service, two_pending, make_product, test_actor_id):
        p1 = make_product("Um", sku="P-1")
        p2 = make_product("Dois", sku="P-2")
        mappings = [
            ItemMapping(two_pending.items[0].id, p1.id),
            ItemMapping(two_pending.items[1].id, p2.id),
        ]

        result = service.validate_item_mappings(two_pending.id, mappings, test_actor_id)

        assert result.status is ImportStatus.VALIDATED
        assert result.message == "All items resolved; import validated"
        assert service.get_import(two_pending.id).status is ImportStatus.VALIDATED

    def test_unknown_product_applies_nothing(self, service, two_pending, make_product, test_actor_id):
        good = make_product("Um", sku="P-1")
        mappings = [
            ItemMapping(two_pending.items[0].id, good.id),
            ItemMapping(two_pending.items[1].id, uuid4()),
        ]
        with pytest.raises(ImportOperationError):
            service.validate_item_mappings(two_pending.id, mappings, test_actor_id)

        reloaded = service.get_import(two_pending.id)
        assert reloaded.pending_items == 2
        assert reloaded.status is ImportStatus.PROCESSING

    def test_unknown_item(self, service, two_pending, make_product, test_actor_id):
        product = make_product("Um", sku="P-1")
        with pytest.raises(LineItemNotFoundError):
            service.validate_item_mappings(
                two_pending.id, [ItemMapping(uuid4(), product.id)], test_actor_id
            )

    def test_unknown_import(self, service, test_actor_id):
        with pytest.raises(ImportNotFoundError):
            service.validate_item_mappings(uuid4(), [], test_actor_id)

    def test_imported_record_rejects_mappings(
        self, session, service, deterministic_clock, policy, make_product, test_actor_id
    ):
        make_product("Cafe", sku="CAF-1")
        result = service.import_xml_bytes(
            build_nfe([Item("CAF-1", "Cafe")], key=make_key(161)), test_actor_id
        )
        ReconciliationService(session, clock=deterministic_clock, policy=policy).complete_import(
            result.id, test_actor_id
        )

        with pytest.raises(InvalidImportStatusError) as exc_info:
            service.validate_item_mappings(result.id, [], test_actor_id)
        assert exc_info.value.status == "imported"


class TestCreateProductForItem:
    def test_creates_product_and_resolves_item(self, service, session, test_actor_id):
        imported = service.import_xml_bytes(
            build_nfe([Item("NEW-1", "Queijo minas frescal", unit="KG")], key=make_key(170)),
            test_actor_id,
        )
        item_id = imported.items[0].id

        item = service.create_product_for_item(imported.id, item_id, test_actor_id)

        assert item.status is LineItemStatus.CREATED
        assert item.match_source is MatchSource.CREATED
        product = SqlCatalog(session).find_by_sku_or_barcode("NEW-1")
        assert product is not None
        assert product.name == "Queijo minas frescal"
        assert product.unit == "KG"
        assert item.matched_product_id == product.id
        assert service.get_import(imported.id).status is ImportStatus.VALIDATED

    def test_existing_code_is_rejected(self, service, make_product, test_actor_id):
        imported = service.import_xml_bytes(
            build_nfe([Item("DUP-1", "Queijo")], key=make_key(171)), test_actor_id
        )
        make_product("Queijo prato", sku="DUP-1")

        with pytest.raises(ImportOperationError) as exc_info:
            service.create_product_for_item(imported.id, imported.items[0].id, test_actor_id)
        assert exc_info.value.operation == "create product"
        assert service.get_import(imported.id).items[0].status is LineItemStatus.PENDING

    def test_inactive_product_with_same_code_is_rejected(
        self, service, session, make_product, test_actor_id
    ):
        retired = make_product("Queijo antigo", sku="Q-9")
        retired.active = False
        session.flush()
        imported = service.import_xml_bytes(
            build_nfe([Item("Q-9", "Requeijao cremoso")], key=make_key(173)), test_actor_id
        )
        assert imported.items[0].status is LineItemStatus.PENDING

        with pytest.raises(ImportOperationError) as exc_info:
            service.create_product_for_item(imported.id, imported.items[0].id, test_actor_id)
        assert exc_info.value.operation == "create product"
        assert "Q-9" in str(exc_info.value)

        after = service.get_import(imported.id)
        assert after.items[0].status is LineItemStatus.PENDING
        assert after.items[0].matched_product_id is None
        assert after.status is ImportStatus.PROCESSING

    def test_unknown_item(self, service, test_actor_id):
        imported = service.import_xml_bytes(
            build_nfe([Item("N-1", "Queijo")], key=make_key(172)), test_actor_id
        )
        with pytest.raises(LineItemNotFoundError):
            service.create_product_for_item(imported.id, uuid4(), test_actor_id)


class TestMatchingFailures:
    def test_catalog_failure_is_confined_to_one_item(
        self, session, deterministic_clock, policy, make_product, test_actor_id
    ):
        make_product("Cafe torrado", sku="CAF-1")
        sql_catalog = SqlCatalog(session)

        class PartlyBrokenCatalog:
            def __getattr__(self, name):
                return getattr(sql_catalog, name)

            def find_by_sku_or_barcode(self, code):
                if code == "BROKEN":
                    raise RuntimeError("lookup timed out")
                return sql_catalog.find_by_sku_or_barcode(code)

        service = ImportService(
            session, clock=deterministic_clock, policy=policy, catalog=PartlyBrokenCatalog()
        )
        result = service.import_xml_bytes(
            build_nfe([Item("BROKEN", "Qualquer"), Item("CAF-1", "Cafe")], key=make_key(180)),
            test_actor_id,
        )

        broken, fine = result.items
        assert broken.status is LineItemStatus.ERROR
        assert "lookup timed out" in broken.error_details
        assert fine.status is LineItemStatus.MATCHED
        assert result.status is ImportStatus.PROCESSING

    def test_failed_matching_pass_marks_import_error_and_is_recoverable(
        self, service, make_product, monkeypatch, test_actor_id
    ):
        def explode(item):
            raise RuntimeError("matcher crashed")

        monkeypatch.setattr(service._matcher, "match", explode)
        result = service.import_xml_bytes(
            build_nfe([Item("N-1", "Queijo")], key=make_key(181)), test_actor_id
        )

        assert result.status is ImportStatus.ERROR
        assert "matcher crashed" in result.error_details

        product = make_product("Queijo", sku="Q-1")
        recovered = service.validate_item_mappings(
            result.id, [ItemMapping(result.items[0].id, product.id)], test_actor_id
        )
        assert recovered.status is ImportStatus.VALIDATED
        assert service.get_import(result.id).error_details is None
