"""
Crawler core components.
"""

from .fetcher import WebFetcher, FetchResult
from .frontier import URLFrontier, VisitedSet, canonicalize_url
from .parser import PageExtractor, ParsedContent
from .robots import RobotsPolicy, wildcard_to_regex
from .scheduler import WikiCrawler, calculate_partition
from .worker import CrawlWorker, WorkerState

__all__ = [
    'WebFetcher', 'FetchResult',
    'URLFrontier', 'VisitedSet', 'canonicalize_url',
    'PageExtractor', 'ParsedContent',
    'RobotsPolicy', 'wildcard_to_regex',
    'WikiCrawler', 'calculate_partition',
    'CrawlWorker', 'WorkerState'
]
