"""
Persistence writer: the consumer half of a crawl pipeline.
"""

import asyncio
from typing import Callable, List, Optional, Tuple

import aiosqlite

from ..models import WikiPage
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlMetrics
from .database import DatabaseError, connect, insert_pages


class PageWriter:
    """
    Drains one worker's page queue into the database in batches.

    Every ``batch_size`` pages are inserted and committed as one
    transaction. A ``None`` on the queue is the stop marker: the writer
    flushes its partial batch and exits. A storage error rolls back the
    open transaction and ends the writer with ``failed`` set; the paired
    worker notices the writer task has finished and stops feeding it.
    """

    def __init__(self, writer_id: int, database_path: str,
                 queue: 'asyncio.Queue[Optional[WikiPage]]', batch_size: int = 50,
                 on_complete: Optional[Callable[[int], None]] = None,
                 metrics: Optional[CrawlMetrics] = None):
        self.writer_id = writer_id
        self.database_path = database_path
        self.queue = queue
        self.batch_size = batch_size
        self.on_complete = on_complete
        self.metrics = metrics
        self.logger = get_crawler_logger(__name__, writer_id=writer_id)

        self.conn: Optional[aiosqlite.Connection] = None
        self.committed_count = 0
        self.failed = False
        self._batch: List[Tuple] = []

    async def open(self):
        """Open the writer's own connection. Raises DatabaseError on failure."""
        self.conn = await connect(self.database_path)

    async def stop(self):
        """Ask the writer to flush and exit once it reaches the stop marker."""
        await self.queue.put(None)

    async def run(self) -> int:
        """Consume pages until stopped. Returns the number of pages committed."""
        if self.conn is None:
            raise DatabaseError(f"PageWriter {self.writer_id} was not opened")

        self.logger.info(f"PageWriter {self.writer_id} started.")
        try:
            while True:
                page = await self.queue.get()
                try:
                    if page is None:
                        break
                    self._batch.append(page.to_row())
                    if len(self._batch) >= self.batch_size:
                        await self._commit_batch(page.title)
                finally:
                    self.queue.task_done()

            # The final commit.
            await self._commit_batch()

        except aiosqlite.Error:
            self.failed = True
            self.logger.exception(f"PageWriter {self.writer_id} failed, rolling back")
            if self.metrics:
                self.metrics.writer_failures.inc()
            await self._rollback()

        finally:
            await self._close()
            self.logger.info(f"Summary: PageWriter {self.writer_id} committed "
                             f"{self.committed_count} pages in total.")
            if not self.failed and self.on_complete is not None:
                self.on_complete(self.committed_count)

        return self.committed_count

    async def _commit_batch(self, most_recent: Optional[str] = None):
        if not self._batch:
            return

        inserted = await insert_pages(self.conn, self._batch)
        await self.conn.commit()
        self._batch.clear()
        self.committed_count += inserted

        if self.metrics:
            self.metrics.record_committed(self.writer_id, inserted)
        if most_recent is not None:
            self.logger.info(f"PageWriter {self.writer_id} committed {inserted} pages. "
                             f"Most recent one: {most_recent}.")

    async def _rollback(self):
        self._batch.clear()
        try:
            await self.conn.rollback()
        except aiosqlite.Error as e:
            self.logger.error(f"PageWriter {self.writer_id} could not roll back: {e}")

    async def _close(self):
        if self.conn is not None:
            try:
                await self.conn.close()
            except aiosqlite.Error as e:
                self.logger.error(f"PageWriter {self.writer_id} could not close its connection: {e}")
            self.conn = None
