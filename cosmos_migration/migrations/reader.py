"""
Source Reader
Paginated, single-pass stream over every document of the source container
"""
import logging
from contextlib import aclosing
from typing import AsyncIterator

from ..core.database import BaseDocumentStore, ContainerRef, QueryPage
from ..core.errors import MigrationStateError

logger = logging.getLogger(__name__)


class SourceReader:
    """
    Streams the source container page by page

    Features:
    - At most one page held in memory
    - Per-page request charge passed through to the caller
    - Single pass: the stream cannot be restarted
    """

    def __init__(self, store: BaseDocumentStore, container: ContainerRef, page_size: int = 1000):
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self.store = store
        self.container = container
        self.page_size = page_size
        self.pages_read = 0
        self.documents_read = 0
        self._started = False

    async def count(self) -> int:
        """Total documents in the source; 0 when the count query fails"""
        return await self.store.safe_count(self.container)

    async def pages(self) -> AsyncIterator[QueryPage]:
        """Yield pages until the source is exhausted; store failures propagate"""
        if self._started:
            raise MigrationStateError(f"Source stream for {self.container} has already been consumed")
        self._started = True

        logger.info(f"📂 Reading source container {self.container} ({self.page_size} documents per page)")
        async with aclosing(self.store.query_pages(self.container, self.page_size)) as store_pages:
            async for page in store_pages:
                self.pages_read += 1
                self.documents_read += len(page.documents)
                logger.debug(f"Page {self.pages_read}: {len(page.documents)} documents, {page.request_charge:.2f} RU")
                yield page
