"""
Web page fetcher that follows redirects and reports the resolved URL.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


class WebFetcher:
    """
    Fetches HTML pages over one shared aiohttp session.

    Redirects are followed; ``FetchResult.url`` is the final URL the
    content was served from.
    """

    def __init__(self, user_agent: str, request_timeout: int = 30,
                 max_connections: int = 10, max_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_connections = max_connections
        self.max_size = max_size

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent},
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections * 2,
                    limit_per_host=self.max_connections,
                    ttl_dns_cache=300
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the resolved URL and content, or the error
        """
        if self.session is None:
            raise RuntimeError("WebFetcher session not started")

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url, allow_redirects=True) as response:
                resolved_url = str(response.url)
                content_type = response.headers.get('content-type', '').lower()

                if not 200 <= response.status < 300:
                    error = f"HTTP status {response.status}"
                elif not self._is_html_content(content_type):
                    error = f"Unsupported content type: {content_type or 'unknown'}"
                else:
                    content = await self._read_content_safely(response)
                    if content is not None:
                        self.stats['successful_requests'] += 1
                        self.stats['total_bytes_downloaded'] += len(content)
                        self.logger.debug(f"Fetched {url} -> {resolved_url}: {response.status} "
                                          f"({len(content)} chars)")
                        return FetchResult(
                            url=resolved_url,
                            status_code=response.status,
                            content=content,
                            content_type=content_type,
                            fetch_time=time.time() - start_time
                        )
                    error = "Content could not be read"

                self.stats['failed_requests'] += 1
                return FetchResult(
                    url=resolved_url,
                    status_code=response.status,
                    content_type=content_type,
                    error=error,
                    fetch_time=time.time() - start_time
                )

        except asyncio.TimeoutError:
            error_msg = "Request timeout"
        except ClientError as e:
            error_msg = f"Client error: {e}"
        except ValueError as e:
            # yarl rejects some malformed URLs before any request is made
            error_msg = f"Invalid URL: {e}"

        self.stats['failed_requests'] += 1
        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            fetch_time=time.time() - start_time
        )

    def _is_html_content(self, content_type: str) -> bool:
        return any(t in content_type for t in ('text/html', 'application/xhtml+xml'))

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Read the response body, refusing anything above max_size bytes.
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
