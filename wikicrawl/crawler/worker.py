"""
Crawl worker: the producer half of a crawl pipeline.
"""

import asyncio
from enum import Enum
from typing import Optional

from ..models import FrontierItem, WikiPage
from ..storage.writer import PageWriter
from ..utils.config import CrawlerConfig
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlMetrics, CrawlStats, format_elapsed
from .fetcher import WebFetcher
from .frontier import URLFrontier, VisitedSet, canonicalize_url
from .parser import PageExtractor
from .robots import RobotsPolicy


class WorkerState(Enum):
    """Lifecycle of a crawl worker."""
    SEEDING = "seeding"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    ENQUEUING = "enqueuing"
    DRAINING = "draining"
    STOPPED = "stopped"


class CrawlWorker:
    """
    Walks the site breadth-first from the entry URL and feeds its writer.

    Each worker owns a private frontier and a private bounded queue to its
    PageWriter. When the frontier runs dry (the depth limit cuts BFS off)
    the worker starts over from the entry URL, which is never marked
    visited; with a random-article entry URL every restart lands somewhere
    new.
    """

    def __init__(self, worker_id: int, config: CrawlerConfig, pages_to_crawl: int,
                 visited: VisitedSet, robots: RobotsPolicy, fetcher: WebFetcher,
                 extractor: PageExtractor, writer: PageWriter,
                 progress_every: int = 50, metrics: Optional[CrawlMetrics] = None):
        self.worker_id = worker_id
        self.config = config
        self.pages_to_crawl = pages_to_crawl
        self.visited = visited
        self.robots = robots
        self.fetcher = fetcher
        self.extractor = extractor
        self.writer = writer
        self.queue = writer.queue
        self.metrics = metrics
        self.logger = get_crawler_logger(__name__, worker_id=worker_id)

        self.entry_url = config.entry_url
        self._canonical_entry_url = canonicalize_url(config.entry_url)
        self.progress_every = max(1, min(pages_to_crawl, progress_every))

        self.frontier = URLFrontier(worker_id)
        self.state = WorkerState.SEEDING
        self.crawl_count = 0
        self.halted = False
        self.stats = CrawlStats()
        self.committed_count = 0
        self._writer_task: Optional[asyncio.Task] = None

    @property
    def writer_alive(self) -> bool:
        return self._writer_task is not None and not self._writer_task.done()

    async def run(self) -> int:
        """Crawl until the page share is met or the writer dies. Returns pages crawled."""
        self.stats = CrawlStats()
        self.logger.info(f"CrawlWorker {self.worker_id} started. Pages to crawl: {self.pages_to_crawl}.")

        self._writer_task = asyncio.create_task(self.writer.run(), name=f"writer-{self.worker_id}")
        if self.metrics:
            self.metrics.active_workers.inc()

        try:
            await self._crawl_loop()
        except asyncio.CancelledError:
            self.logger.info(f"CrawlWorker {self.worker_id} cancelled, draining its writer")
        finally:
            await self._shutdown()
            if self.metrics:
                self.metrics.active_workers.dec()

        self._report_progress(summary=True)
        return self.crawl_count

    async def _crawl_loop(self):
        self.frontier.push(FrontierItem(self.entry_url, 0))

        while self.crawl_count < self.pages_to_crawl and self.writer_alive:
            self.state = WorkerState.SEEDING
            item = self.frontier.pop() or FrontierItem(self.entry_url, 0)

            if not self.robots.allowed(item.url):
                if item.url == self.entry_url:
                    self.logger.error(f"CrawlWorker {self.worker_id} reported the entry url "
                                      f"({self.entry_url}) is disallowed. Exiting...")
                    self.halted = True
                    break
                self._skip('robots')
                self.stats.robots_blocked += 1
                continue

            if item.url in self.visited:
                self._skip('visited')
                self.stats.visited_skipped += 1
                continue

            if not await self._process(item):
                break

            if self.crawl_count and self.crawl_count % self.progress_every == 0:
                self._report_progress()

            # Be polite.
            await asyncio.sleep(self.config.interval)

    async def _process(self, item: FrontierItem) -> bool:
        """
        Fetch, extract and enqueue one item.

        Returns False only when the writer went away while the page was
        being handed over.
        """
        self.state = WorkerState.FETCHING
        result = await self.fetcher.fetch(item.url)
        if not result.ok:
            self.stats.fetch_errors += 1
            if self.metrics:
                self.metrics.fetch_errors.inc()
            self.logger.warning(f"CrawlWorker {self.worker_id} failed to fetch {item.url}: {result.error}")
            return True

        # The entry URL may redirect (e.g. to a random article), so filter
        # on the resolved URL.
        resolved_url = result.url
        if not self.extractor.matches(resolved_url):
            self._skip('filtered')
            self.stats.filtered_out += 1
            self.logger.debug(f"Resolved URL outside crawl space: {resolved_url}")
            return True

        canonical = canonicalize_url(resolved_url)
        if canonical != self._canonical_entry_url:
            self.visited.add(canonical)

        self.state = WorkerState.EXTRACTING
        try:
            parsed = await asyncio.to_thread(self.extractor.extract, result.content, resolved_url)
        except ValueError as e:
            self.logger.warning(f"CrawlWorker {self.worker_id} could not parse {resolved_url}: {e}")
            parsed = None

        if parsed is None:
            self._skip('discarded')
            self.stats.discarded += 1
            return True

        self.state = WorkerState.ENQUEUING
        if not await self._enqueue(parsed.page):
            self.logger.warning(f"CrawlWorker {self.worker_id} dropped '{parsed.page.title}': "
                                f"writer is no longer running")
            return False

        self.crawl_count += 1
        self.stats.pages_crawled += 1
        if self.metrics:
            self.metrics.record_crawled(self.worker_id)

        if item.depth < self.config.max_depth:
            self.frontier.push_links(parsed.links, item.depth + 1, self.visited)
        return True

    async def _enqueue(self, page: WikiPage) -> bool:
        """Blocking put onto the writer queue, abandoned if the writer exits."""
        if not self.writer_alive:
            return False
        if not self.queue.full():
            self.queue.put_nowait(page)
            return True

        put = asyncio.ensure_future(self.queue.put(page))
        try:
            await asyncio.wait({put, self._writer_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not put.done():
                put.cancel()
        return put.done() and not put.cancelled()

    async def _shutdown(self):
        """Wait for the writer to consume everything, then stop it."""
        self.state = WorkerState.DRAINING

        if self.writer_alive:
            drained = asyncio.ensure_future(self.queue.join())
            try:
                await asyncio.wait({drained, self._writer_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not drained.done():
                    drained.cancel()
            if self.writer_alive:
                await self.writer.stop()

        if self._writer_task is not None:
            self.committed_count = await self._writer_task
        self.state = WorkerState.STOPPED

    def _skip(self, reason: str):
        if self.metrics:
            self.metrics.record_skipped(reason)

    def _report_progress(self, summary: bool = False):
        percent = self.crawl_count * 100.0 / self.pages_to_crawl if self.pages_to_crawl else 100.0
        self.logger.info(f"{'Summary: ' if summary else ''}CrawlWorker {self.worker_id} crawled "
                         f"{self.crawl_count} pages, {percent:.2f}% completed. "
                         f"Elapsed time: {format_elapsed(self.stats.elapsed_time)}.")
