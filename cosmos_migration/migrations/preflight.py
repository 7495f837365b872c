"""
Preflight Validator
Read-only check of how many source documents lack each destination key field
"""
import logging

from ..core.database import BaseDocumentStore, ContainerRef
from ..core.documents import PartitionKeyPath
from ..core.errors import QueryError
from ..monitoring.metrics import PreflightReport

logger = logging.getLogger(__name__)


class PreflightValidator:
    """Best-effort advisory check; a failing count never blocks the migration"""

    def __init__(self, store: BaseDocumentStore, container: ContainerRef, partition_key: PartitionKeyPath):
        self.store = store
        self.container = container
        self.partition_key = partition_key

    async def validate(self, source_total: int = 0) -> PreflightReport:
        missing_counts = {}
        failed_checks = []
        for field_name in self.partition_key.fields:
            try:
                missing_counts[field_name] = await self.store.count_missing_field(self.container, field_name)
            except QueryError as e:
                logger.warning(f"Missing-field count for '{field_name}' failed, treating as 0: {e}")
                missing_counts[field_name] = 0
                failed_checks.append(field_name)

        return PreflightReport(
            source_total=source_total,
            missing_counts=missing_counts,
            failed_checks=tuple(failed_checks),
        )
