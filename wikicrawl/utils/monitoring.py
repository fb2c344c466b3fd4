"""
Metrics and progress statistics for the crawler.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, start_http_server


def format_elapsed(seconds: float) -> str:
    """Render a duration as HH:MM:SS.mmm."""
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3600 * 1000)
    minutes, millis = divmod(millis, 60 * 1000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


@dataclass
class CrawlStats:
    """Statistics for one crawl worker."""
    start_time: float = field(default_factory=time.time)
    pages_crawled: int = 0
    fetch_errors: int = 0
    robots_blocked: int = 0
    visited_skipped: int = 0
    filtered_out: int = 0
    discarded: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_crawled / elapsed_minutes if elapsed_minutes > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pages_crawled': self.pages_crawled,
            'fetch_errors': self.fetch_errors,
            'robots_blocked': self.robots_blocked,
            'visited_skipped': self.visited_skipped,
            'filtered_out': self.filtered_out,
            'discarded': self.discarded,
            'elapsed_time': self.elapsed_time,
            'pages_per_minute': self.pages_per_minute,
        }


class CrawlMetrics:
    """
    Prometheus counters shared by every worker and writer of one run.

    Each instance owns its registry, so several crawls (or tests) in one
    process do not collide.
    """

    def __init__(self, registry: CollectorRegistry = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()

        self.pages_crawled = Counter(
            'wikicrawl_pages_crawled_total',
            'Pages extracted and handed to a writer',
            ['worker'],
            registry=self.registry
        )
        self.pages_committed = Counter(
            'wikicrawl_pages_committed_total',
            'Pages committed to the database',
            ['writer'],
            registry=self.registry
        )
        self.items_skipped = Counter(
            'wikicrawl_items_skipped_total',
            'Frontier items skipped without producing a page',
            ['reason'],
            registry=self.registry
        )
        self.fetch_errors = Counter(
            'wikicrawl_fetch_errors_total',
            'Failed page fetches',
            registry=self.registry
        )
        self.writer_failures = Counter(
            'wikicrawl_writer_failures_total',
            'Writers that stopped on a storage error',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'wikicrawl_active_workers',
            'Number of running crawl workers',
            registry=self.registry
        )

    def record_crawled(self, worker_id: int):
        self.pages_crawled.labels(worker=str(worker_id)).inc()

    def record_committed(self, writer_id: int, count: int):
        if count:
            self.pages_committed.labels(writer=str(writer_id)).inc(count)

    def record_skipped(self, reason: str):
        self.items_skipped.labels(reason=reason).inc()

    def value(self, name: str, labels: Dict[str, str] = None) -> float:
        """Current value of a sample, 0 if it was never recorded."""
        result = self.registry.get_sample_value(name, labels or {})
        return result if result is not None else 0.0

    def start_server(self, port: int):
        """Expose the metrics over HTTP."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def export(self) -> bytes:
        """Metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)
