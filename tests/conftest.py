"""Shared fixtures: an in-memory document store and a recording reporter."""

import os
from typing import Any, Dict, List, Optional, Set

import pytest

from cosmos_migration.core.database import (
    BaseDocumentStore,
    ContainerInfo,
    ContainerRef,
    DatabaseConfig,
    QueryPage,
    ThroughputMode,
    UpsertStatus,
)
from cosmos_migration.core.documents import PartitionKeyPath, PartitionKeyValue, document_identity, lookup_field
from cosmos_migration.core.errors import ConnectivityError, DocumentWriteError, QueryError
from cosmos_migration.monitoring.reporters import MigrationReporter

FAKE_CONNECTION_STRING = "AccountEndpoint=https://fake-account.documents.azure.com:443/;AccountKey=ZmFrZQ==;"
OTHER_CONNECTION_STRING = "AccountEndpoint=https://other-account.documents.azure.com:443/;AccountKey=b3RoZXI=;"


class FakeDocumentStore(BaseDocumentStore):
    """In-memory store with injectable failures.

    Features:
    - Containers hold documents in insertion order, keyed by id for upserts
    - write failures by document id, conflicts on existing ids
    - query failure after N pages, count failures per field
    - connect/close call tracking
    """

    def __init__(self, config: Optional[DatabaseConfig] = None, request_charge_per_page: float = 2.5):
        super().__init__(config or DatabaseConfig(FAKE_CONNECTION_STRING))
        self.containers: Dict[ContainerRef, List[Dict[str, Any]]] = {}
        self.partition_keys: Dict[ContainerRef, PartitionKeyPath] = {}
        self.request_charge_per_page = request_charge_per_page

        self.fail_writes: Dict[str, str] = {}
        self.conflict_on_existing = False
        self.fail_query_after_pages: Optional[int] = None
        self.failing_count_fields: Set[str] = set()
        self.fail_document_count = False
        self.fail_connect = False

        self.connect_calls = 0
        self.close_calls = 0
        self.upsert_calls = 0
        self.open_queries = 0
        self.created: List[ContainerRef] = []

    def add_container(self, database_name: str, name: str, paths=("/id",),
                      documents: Optional[List[Dict[str, Any]]] = None) -> ContainerRef:
        ref = ContainerRef(database_name, name)
        self.containers[ref] = [dict(document) for document in documents or []]
        self.partition_keys[ref] = PartitionKeyPath(list(paths))
        return ref

    def documents(self, ref: ContainerRef) -> List[Dict[str, Any]]:
        return self.containers[ref]

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise ConnectivityError("injected connect failure")
        self.is_connected = True

    async def _close(self) -> None:
        self.close_calls += 1

    async def query_pages(self, container: ContainerRef, page_size: int):
        snapshot = list(self.containers.get(container, []))
        self.open_queries += 1
        try:
            for page_number, start in enumerate(range(0, len(snapshot), page_size)):
                if self.fail_query_after_pages is not None and page_number >= self.fail_query_after_pages:
                    raise QueryError("injected query failure")
                page = [dict(document) for document in snapshot[start:start + page_size]]
                yield QueryPage(documents=page, request_charge=self.request_charge_per_page)
        finally:
            self.open_queries -= 1

    async def count_documents(self, container: ContainerRef) -> int:
        if self.fail_document_count:
            raise QueryError("injected count failure")
        return len(self.containers.get(container, []))

    async def count_missing_field(self, container: ContainerRef, field_path: str) -> int:
        if field_path in self.failing_count_fields:
            raise QueryError(f"injected count failure for {field_path}")
        return sum(1 for document in self.containers.get(container, []) if lookup_field(document, field_path).is_null)

    async def read_partition_key_paths(self, container: ContainerRef) -> PartitionKeyPath:
        if container not in self.partition_keys:
            raise QueryError(f"Container {container} not found")
        return self.partition_keys[container]

    async def upsert_document(self, container: ContainerRef, document: Dict[str, Any],
                              partition_key: PartitionKeyValue) -> UpsertStatus:
        self.upsert_calls += 1
        document_id = document_identity(document)
        if document_id in self.fail_writes:
            raise DocumentWriteError(self.fail_writes[document_id], status_code=400)

        target = self.containers.setdefault(container, [])
        for index, existing in enumerate(target):
            if document_identity(existing) == document_id:
                if self.conflict_on_existing:
                    return UpsertStatus.CONFLICT
                target[index] = dict(document)
                return UpsertStatus.UPSERTED
        target.append(dict(document))
        return UpsertStatus.UPSERTED

    async def container_exists(self, container: ContainerRef) -> bool:
        return container in self.containers

    async def list_containers(self, database_name: str) -> List[ContainerInfo]:
        return [
            ContainerInfo(name=ref.container_name, partition_key_paths=list(self.partition_keys[ref].paths),
                          document_count=len(documents))
            for ref, documents in self.containers.items()
            if ref.database_name == database_name
        ]

    async def create_container(self, container: ContainerRef, partition_key: PartitionKeyPath,
                               throughput: ThroughputMode = ThroughputMode.AUTOSCALE) -> None:
        self.created.append(container)
        self.containers[container] = []
        self.partition_keys[container] = partition_key


class RecordingReporter(MigrationReporter):
    """Keeps every event it receives."""

    def __init__(self):
        self.preflights = []
        self.starts = []
        self.progress = []
        self.costs = []
        self.skips = []
        self.errors = []
        self.completions = []

    def on_preflight(self, report) -> None:
        self.preflights.append(report)

    def on_start(self, total: int, dry_run: bool) -> None:
        self.starts.append((total, dry_run))

    def on_progress(self, snapshot) -> None:
        self.progress.append(snapshot)

    def on_cost(self, snapshot) -> None:
        self.costs.append(snapshot)

    def on_skip(self, notice) -> None:
        self.skips.append(notice)

    def on_error(self, record) -> None:
        self.errors.append(record)

    def on_complete(self, report) -> None:
        self.completions.append(report)


def make_documents(count: int, start: int = 0) -> List[Dict[str, Any]]:
    """Documents keyed by /tenantId and /id"""
    return [{"id": f"doc-{i}", "tenantId": f"tenant-{i % 3}", "value": i} for i in range(start, start + count)]


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture(autouse=True)
def clean_migration_environment(monkeypatch):
    """Keep MIGRATION_* variables of the host out of every test."""
    for name in list(os.environ):
        if name.startswith("MIGRATION_"):
            monkeypatch.delenv(name, raising=False)
