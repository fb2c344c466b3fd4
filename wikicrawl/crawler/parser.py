"""
Extraction of structured page data from encyclopedia article HTML.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from ..models import WikiPage


HEADINGS = ('h1', 'h2', 'h3', 'h4', 'h5', 'h6')

# "This page was last edited on 18 January 2018, at 21:30."
LAST_EDITED_PATTERN = re.compile(r'edited on (\d{1,2}) (\w+) (\d{4}), at (\d{1,2}):(\d{2})')

# English month names, independent of the process locale (strptime's %B is not).
MONTHS = {
    name: number for number, name in enumerate((
        'January', 'February', 'March', 'April', 'May', 'June', 'July',
        'August', 'September', 'October', 'November', 'December',
    ), start=1)
}


@dataclass
class ParsedContent:
    """An extracted page together with the crawlable links found in it."""
    page: WikiPage
    links: List[str] = field(default_factory=list)


class PageExtractor:
    """
    Turns a MediaWiki article into a WikiPage.

    A document missing its title, main content or category box is not an
    article and yields nothing, as does one whose cleaned content or
    category list comes out empty.
    """

    TITLE_ID = 'firstHeading'
    CONTENT_SELECTOR = '#mw-content-text .mw-parser-output'
    CATEGORIES_ID = 'mw-normal-catlinks'
    LAST_MODIFIED_ID = 'footer-info-lastmod'

    def __init__(self, host_regex: str, path_regex: str,
                 clock: Callable[[], datetime] = datetime.now):
        self.host_pattern = re.compile(host_regex)
        self.path_pattern = re.compile(path_regex)
        if self.path_pattern.groups != 1:
            raise ValueError(f"path_regex must contain exactly one capture group: {path_regex}")
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def matches(self, url: str) -> bool:
        """Check that a URL lies within the crawled host and path space."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        host = parsed.hostname or ''
        return (self.host_pattern.fullmatch(host) is not None
                and self.path_pattern.fullmatch(parsed.path) is not None)

    def title_from_path(self, path: str) -> Optional[str]:
        """Recover a page title from a URL path, e.g. '/wiki/New_York' -> 'New York'."""
        match = self.path_pattern.search(unquote(path))
        if not match or match.group(1) is None:
            return None
        return match.group(1).replace('_', ' ')

    def extract(self, html: str, url: str) -> Optional[ParsedContent]:
        """
        Extract a page from HTML served at ``url`` (the post-redirect URL).

        Returns None when the document is not a complete article.
        """
        soup = BeautifulSoup(html, 'lxml')

        title_element = soup.find(id=self.TITLE_ID)
        content_element = soup.select_one(self.CONTENT_SELECTOR)
        categories_element = soup.find(id=self.CATEGORIES_ID)

        if title_element is None or content_element is None or categories_element is None:
            self.logger.debug(f"Not an article, skipping: {url}")
            return None

        title = title_element.get_text().strip()

        self._clean_content(content_element)
        content = self._content_text(content_element)
        categories = [
            self._normalize_whitespace(li.get_text())
            for li in categories_element.select('ul > li')
        ]
        categories = [c for c in categories if c]

        if not title or not content or not categories:
            self.logger.debug(f"Empty content or categories, skipping: {url}")
            return None

        last_modify = self._extract_last_modify(soup.find(id=self.LAST_MODIFIED_ID))

        links = self._extract_links(content_element, url)
        out_links = []
        for link in links:
            dest = self.title_from_path(urlparse(link).path)
            if dest is not None:
                out_links.append(dest)

        page = WikiPage(
            title=title,
            content=content,
            categories=categories,
            last_modify=last_modify,
            out_links=list(dict.fromkeys(out_links)),
        )
        self.logger.debug(f"Extracted '{title}' from {url}: {len(content)} chars, "
                          f"{len(page.out_links)} outgoing titles")
        return ParsedContent(page=page, links=links)

    def _clean_content(self, content: Tag):
        """Strip everything from the article body that is not running text."""
        for element in content.select('sup.reference, span.mw-editsection'):
            element.decompose()
        for element in content.find_all(['table', 'div']):
            if not element.decomposed:
                element.decompose()

        # A heading directly followed by another heading has no body text.
        dangling = []
        for heading in content.find_all(HEADINGS):
            sibling = heading.find_next_sibling()
            if sibling is not None and sibling.name in HEADINGS:
                dangling.append(heading)
        for heading in dangling:
            heading.decompose()

    def _content_text(self, content: Tag) -> str:
        paragraphs = []
        for child in content.find_all(recursive=False):
            text = child.get_text().strip()
            if text:
                paragraphs.append(text)
        return '\n'.join(paragraphs)

    def _extract_last_modify(self, element: Optional[Tag]) -> datetime:
        """Parse the footer timestamp, falling back to now."""
        if element is None:
            return self.clock()

        match = LAST_EDITED_PATTERN.search(element.get_text())
        if not match:
            return self.clock()

        day, month_name, year, hour, minute = match.groups()
        month = MONTHS.get(month_name)
        if month is None:
            self.logger.debug(f"Unknown month in modification time: {match.group(0)}")
            return self.clock()

        try:
            return datetime(int(year), month, int(day), int(hour), int(minute))
        except ValueError:
            self.logger.debug(f"Unparsable modification time: {match.group(0)}")
            return self.clock()

    def _extract_links(self, content: Tag, base_url: str) -> List[str]:
        """Absolute URLs of in-content anchors that stay inside the crawled space."""
        links = []
        for anchor in content.select('a[href]'):
            try:
                absolute_url = urljoin(base_url, anchor['href'].strip())
            except ValueError:
                continue
            if self.matches(absolute_url):
                links.append(absolute_url)
        return links

    @staticmethod
    def _normalize_whitespace(text: str) -> str:
        return ' '.join(text.split())
