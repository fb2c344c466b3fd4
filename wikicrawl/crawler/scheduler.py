"""
Crawler scheduler that wires worker/writer pipelines and runs them.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from ..storage.database import DatabaseError
from ..storage.writer import PageWriter
from ..utils.config import Config
from ..utils.monitoring import CrawlMetrics, format_elapsed
from .fetcher import WebFetcher
from .frontier import VisitedSet
from .parser import PageExtractor
from .robots import RobotsPolicy
from .worker import CrawlWorker


def calculate_partition(total: int, workers: int, index: int) -> int:
    """
    Share of ``total`` pages assigned to worker ``index``.

    The first ``total % workers`` workers get one page more than the rest,
    so the shares add up exactly to ``total``.
    """
    share = total // workers
    if index < total % workers:
        share += 1
    return share


class WikiCrawler:
    """
    Runs N independent crawl pipelines against one site.

    Every pipeline is a CrawlWorker feeding its own PageWriter through a
    bounded queue. Pipelines share only the visited set and the robots
    policy, so a storage failure in one pair leaves the others running.
    """

    def __init__(self, config: Config, metrics: Optional[CrawlMetrics] = None):
        self.config = config
        self.metrics = metrics or CrawlMetrics()
        self.logger = logging.getLogger(__name__)

        self.visited = VisitedSet()
        self.robots = RobotsPolicy(config.crawler.user_agent)
        self.workers: List[CrawlWorker] = []
        self.fetcher: Optional[WebFetcher] = None
        self.committed_count = 0
        self.start_time: Optional[float] = None

    def _on_writer_complete(self, committed: int):
        self.committed_count += committed

    async def run(self) -> int:
        """Crawl until every pipeline finishes. Returns the total pages committed."""
        crawler = self.config.crawler
        self.start_time = time.time()
        self.committed_count = 0

        self.logger.info(f"WikiCrawler started. Pages to crawl: {crawler.pages}.")
        self.logger.info(f"Entry URL: {crawler.entry_url}")
        self.logger.info(f"Workers: {crawler.workers}, max depth: {crawler.max_depth}, "
                         f"interval: {crawler.interval_ms}ms")

        async with WebFetcher(
            user_agent=crawler.user_agent,
            request_timeout=crawler.request_timeout,
            max_connections=crawler.workers
        ) as fetcher:
            self.fetcher = fetcher
            if not await self.robots.parse(crawler.entry_url, fetcher.session):
                self.logger.error("Cannot crawl without a valid entry URL. Exiting...")
                return 0

            self.workers = await self._create_workers(fetcher)
            if not self.workers:
                self.logger.error("No crawl pipeline could be started. Exiting...")
                return 0

            await asyncio.gather(*(worker.run() for worker in self.workers))

        if all(worker.halted for worker in self.workers):
            self.logger.error("Every worker halted: the entry URL is disallowed by robots.txt")

        fetch_stats = self.fetcher.get_stats()
        self.logger.info(f"Fetched {fetch_stats['successful_requests']} pages, "
                         f"{fetch_stats['failed_requests']} requests failed.")
        self.logger.info(f"Summary: WikiCrawler committed {self.committed_count} pages in total. "
                         f"Elapsed time: {format_elapsed(time.time() - self.start_time)}.")
        return self.committed_count

    async def _create_workers(self, fetcher: WebFetcher) -> List[CrawlWorker]:
        crawler = self.config.crawler
        extractor = PageExtractor(crawler.host_regex, crawler.path_regex)
        workers = []

        for i in range(crawler.workers):
            queue: asyncio.Queue = asyncio.Queue(maxsize=crawler.queue_size)
            writer = PageWriter(
                writer_id=i,
                database_path=self.config.database.path,
                queue=queue,
                batch_size=self.config.database.batch_size,
                on_complete=self._on_writer_complete,
                metrics=self.metrics
            )
            try:
                await writer.open()
            except DatabaseError as e:
                self.logger.error(f"Failed to create pipeline {i}: {e}")
                continue

            workers.append(CrawlWorker(
                worker_id=i,
                config=crawler,
                pages_to_crawl=calculate_partition(crawler.pages, crawler.workers, i),
                visited=self.visited,
                robots=self.robots,
                fetcher=fetcher,
                extractor=extractor,
                writer=writer,
                progress_every=self.config.database.batch_size,
                metrics=self.metrics
            ))

        return workers

    def get_stats(self) -> Dict[str, Any]:
        """Get current crawl statistics."""
        return {
            'committed_count': self.committed_count,
            'visited_urls': len(self.visited),
            'elapsed_time': time.time() - self.start_time if self.start_time else 0.0,
            'fetcher': self.fetcher.get_stats() if self.fetcher else {},
            'workers': {
                worker.worker_id: {
                    'state': worker.state.value,
                    'halted': worker.halted,
                    'committed': worker.committed_count,
                    **worker.stats.to_dict(),
                    **worker.frontier.get_stats(),
                }
                for worker in self.workers
            },
        }
