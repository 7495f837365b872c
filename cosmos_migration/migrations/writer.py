"""
Destination Writer
Idempotent, dry-run-aware write of one document
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..core.database import BaseDocumentStore, ContainerRef, UpsertStatus
from ..core.documents import PartitionKeyValue, document_identity
from ..core.errors import DocumentWriteError

logger = logging.getLogger(__name__)


class WriteStatus(Enum):
    WRITTEN = "written"
    CONFLICT = "conflict"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass(frozen=True)
class WriteOutcome:
    """Result of writing one document"""
    status: WriteStatus
    document_id: str
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        # A duplicate-key conflict means the document was already migrated
        return self.status != WriteStatus.FAILED


class DestinationWriter:
    """Writes documents to the destination container with upsert semantics"""

    def __init__(self, store: BaseDocumentStore, container: ContainerRef, dry_run: bool = False):
        self.store = store
        self.container = container
        self.dry_run = dry_run

    async def write(self, document: Dict[str, Any], partition_key: PartitionKeyValue) -> WriteOutcome:
        document_id = document_identity(document)
        if self.dry_run:
            return WriteOutcome(WriteStatus.DRY_RUN, document_id)

        try:
            status = await self.store.upsert_document(self.container, document, partition_key)
        except DocumentWriteError as e:
            logger.debug(f"Write of {document_id} to {self.container} failed: {e}")
            return WriteOutcome(WriteStatus.FAILED, document_id, str(e))

        if status == UpsertStatus.CONFLICT:
            logger.debug(f"Document {document_id} already present in {self.container}")
            return WriteOutcome(WriteStatus.CONFLICT, document_id)
        return WriteOutcome(WriteStatus.WRITTEN, document_id)
