"""
Per-worker URL frontier and the process-wide visited set.
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, Iterable, Optional, Set
from urllib.parse import urlparse, urlunparse

from ..models import FrontierItem


def canonicalize_url(url: str) -> str:
    """
    Reduce a URL to scheme://host/path, dropping query and fragment.

    The canonical form is the key used for deduplication across workers.
    """
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, '', '', ''))


class VisitedSet:
    """
    Set of canonical URLs shared by every crawl worker.

    Only atomic insert and membership tests are offered; nothing is ever
    removed. Two workers may still race past the membership check for the
    same URL, which the storage primary key absorbs.
    """

    def __init__(self, urls: Optional[Iterable[str]] = None):
        self._urls: Set[str] = set(urls or ())
        self._lock = threading.Lock()

    def add(self, url: str) -> bool:
        """Insert a URL. Returns True if it was not present before."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


class URLFrontier:
    """
    FIFO queue of URLs pending fetch, private to one crawl worker.

    The frontier does not deduplicate across pushes: a URL can be queued
    several times and the visited set check at dequeue time turns the
    later copies into no-op skips.
    """

    def __init__(self, worker_id: int = 0):
        self.worker_id = worker_id
        self.logger = logging.getLogger(__name__)
        self._queue: Deque[FrontierItem] = deque()
        self.total_pushed = 0

    def push(self, item: FrontierItem):
        self._queue.append(item)
        self.total_pushed += 1

    def push_links(self, links: Iterable[str], depth: int, visited: VisitedSet) -> int:
        """
        Queue outgoing links at the given depth.

        Duplicates inside this batch are dropped, as are links already
        visited. Returns the number of items queued.
        """
        added = 0
        for url in dict.fromkeys(canonicalize_url(link) for link in links):
            if url in visited:
                continue
            self.push(FrontierItem(url, depth))
            added += 1

        if added:
            self.logger.debug(f"Frontier {self.worker_id} queued {added} URLs at depth {depth}")
        return added

    def pop(self) -> Optional[FrontierItem]:
        """Remove and return the oldest item, or None if the frontier is empty."""
        if not self._queue:
            return None
        return self._queue.popleft()

    def is_empty(self) -> bool:
        return not self._queue

    def __len__(self) -> int:
        return len(self._queue)

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': len(self._queue),
            'total_pushed': self.total_pushed,
        }
