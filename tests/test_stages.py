"""Tests for the source reader, destination writer and preflight validator."""

import pytest

from conftest import FakeDocumentStore, make_documents

from cosmos_migration.core.documents import PartitionKeyPath, resolve_partition_key
from cosmos_migration.core.errors import MigrationStateError, QueryError
from cosmos_migration.migrations.preflight import PreflightValidator
from cosmos_migration.migrations.reader import SourceReader
from cosmos_migration.migrations.writer import DestinationWriter, WriteStatus

KEY = PartitionKeyPath(["/tenantId", "/id"])


class TestSourceReader:
    """Tests for SourceReader."""

    @pytest.mark.asyncio
    async def test_pages_cover_every_document_once(self, store):
        source = store.add_container("db", "source", documents=make_documents(25))
        reader = SourceReader(store, source, page_size=10)

        sizes = []
        charges = []
        async for page in reader.pages():
            sizes.append(len(page.documents))
            charges.append(page.request_charge)

        assert sizes == [10, 10, 5]
        assert charges == [2.5, 2.5, 2.5]
        assert reader.pages_read == 3
        assert reader.documents_read == 25

    @pytest.mark.asyncio
    async def test_empty_source_yields_nothing(self, store):
        source = store.add_container("db", "source")
        reader = SourceReader(store, source)
        pages = [page async for page in reader.pages()]
        assert pages == []

    @pytest.mark.asyncio
    async def test_stream_is_single_pass(self, store):
        source = store.add_container("db", "source", documents=make_documents(3))
        reader = SourceReader(store, source)
        async for _ in reader.pages():
            pass
        with pytest.raises(MigrationStateError):
            async for _ in reader.pages():
                pass

    @pytest.mark.asyncio
    async def test_query_failure_propagates(self, store):
        source = store.add_container("db", "source", documents=make_documents(30))
        store.fail_query_after_pages = 1
        reader = SourceReader(store, source, page_size=10)
        with pytest.raises(QueryError):
            async for _ in reader.pages():
                pass
        assert reader.pages_read == 1

    @pytest.mark.asyncio
    async def test_closing_the_stream_closes_the_store_query(self, store):
        source = store.add_container("db", "source", documents=make_documents(30))
        reader = SourceReader(store, source, page_size=10)
        pages = reader.pages()
        await pages.__anext__()
        assert store.open_queries == 1

        await pages.aclose()
        assert store.open_queries == 0

    @pytest.mark.asyncio
    async def test_count_failure_is_zero(self, store):
        source = store.add_container("db", "source", documents=make_documents(3))
        store.fail_document_count = True
        assert await SourceReader(store, source).count() == 0

    def test_page_size_must_be_positive(self, store):
        with pytest.raises(ValueError):
            SourceReader(store, store.add_container("db", "source"), page_size=0)


class TestDestinationWriter:
    """Tests for DestinationWriter."""

    @pytest.mark.asyncio
    async def test_write_inserts_document(self, store):
        destination = store.add_container("db", "dest", paths=KEY.paths)
        document = {"id": "1", "tenantId": "t"}
        outcome = await DestinationWriter(store, destination).write(document, resolve_partition_key(KEY, document))
        assert outcome.status == WriteStatus.WRITTEN
        assert outcome.succeeded
        assert store.documents(destination) == [document]

    @pytest.mark.asyncio
    async def test_rewrite_is_idempotent(self, store):
        destination = store.add_container("db", "dest", paths=KEY.paths)
        writer = DestinationWriter(store, destination)
        document = {"id": "1", "tenantId": "t"}
        key = resolve_partition_key(KEY, document)
        await writer.write(document, key)
        outcome = await writer.write(document, key)
        assert outcome.succeeded
        assert len(store.documents(destination)) == 1

    @pytest.mark.asyncio
    async def test_conflict_counts_as_success(self, store):
        destination = store.add_container("db", "dest", paths=KEY.paths, documents=[{"id": "1", "tenantId": "t"}])
        store.conflict_on_existing = True
        document = {"id": "1", "tenantId": "t"}
        outcome = await DestinationWriter(store, destination).write(document, resolve_partition_key(KEY, document))
        assert outcome.status == WriteStatus.CONFLICT
        assert outcome.succeeded

    @pytest.mark.asyncio
    async def test_write_error_is_returned_not_raised(self, store):
        destination = store.add_container("db", "dest", paths=KEY.paths)
        store.fail_writes["1"] = "Request rate is large"
        document = {"id": "1", "tenantId": "t"}
        outcome = await DestinationWriter(store, destination).write(document, resolve_partition_key(KEY, document))
        assert outcome.status == WriteStatus.FAILED
        assert not outcome.succeeded
        assert outcome.document_id == "1"
        assert outcome.message == "Request rate is large"

    @pytest.mark.asyncio
    async def test_dry_run_never_writes(self, store):
        destination = store.add_container("db", "dest", paths=KEY.paths)
        document = {"id": "1", "tenantId": "t"}
        outcome = await DestinationWriter(store, destination, dry_run=True).write(
            document, resolve_partition_key(KEY, document)
        )
        assert outcome.status == WriteStatus.DRY_RUN
        assert outcome.succeeded
        assert store.upsert_calls == 0
        assert store.documents(destination) == []


class TestPreflightValidator:
    """Tests for PreflightValidator."""

    @pytest.mark.asyncio
    async def test_counts_missing_per_field(self, store):
        documents = make_documents(5) + [{"id": "x"}, {"id": "y", "tenantId": None}]
        source = store.add_container("db", "source", documents=documents)
        report = await PreflightValidator(store, source, KEY).validate(source_total=7)
        assert report.missing_counts == {"tenantId": 2, "id": 0}
        assert report.expected_skips == 2
        assert not report.all_fields_present
        assert report.failed_checks == ()

    @pytest.mark.asyncio
    async def test_all_fields_present(self, store):
        source = store.add_container("db", "source", documents=make_documents(5))
        report = await PreflightValidator(store, source, KEY).validate(source_total=5)
        assert report.all_fields_present
        assert report.expected_skips == 0

    @pytest.mark.asyncio
    async def test_failed_count_is_reported_as_zero(self, store):
        source = store.add_container("db", "source", documents=[{"id": "x"}])
        store.failing_count_fields.add("tenantId")
        report = await PreflightValidator(store, source, KEY).validate(source_total=1)
        assert report.missing_counts["tenantId"] == 0
        assert report.failed_checks == ("tenantId",)

    @pytest.mark.asyncio
    async def test_preflight_is_read_only(self):
        store = FakeDocumentStore()
        source = store.add_container("db", "source", documents=make_documents(3))
        await PreflightValidator(store, source, KEY).validate()
        assert store.upsert_calls == 0
        assert store.documents(source) == make_documents(3)
