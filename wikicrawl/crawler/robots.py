"""
robots.txt exclusion rules for the single host being crawled.
"""

import asyncio
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import unquote, urljoin, urlparse

from aiohttp import ClientError, ClientSession, ClientTimeout


DIRECTIVE_PATTERN = re.compile(
    r'User-agent: ([^#]*)|Allow: ([^#]*)|Disallow: ([^#]*)',
    re.IGNORECASE
)


def wildcard_to_regex(wildcard: str) -> str:
    """
    Translate a robots.txt user-agent wildcard into an anchored regex.

    '*' matches any run of characters and '?' any single character;
    everything else is matched literally.
    """
    parts = []
    for ch in wildcard:
        if ch == '*':
            parts.append('.*')
        elif ch == '?':
            parts.append('.')
        else:
            parts.append(re.escape(ch))
    return '^' + ''.join(parts) + '$'


class RobotsPolicy:
    """
    Exclusion rules from the robots.txt of the crawled host.

    Rules are kept in file order and evaluated first-match: the verdict of
    the earliest rule whose path prefixes the URL wins, even when a later
    and longer rule would also match.
    """

    def __init__(self, user_agent: str):
        self.user_agent = user_agent
        self.logger = logging.getLogger(__name__)

        self.robots_url: Optional[str] = None
        self.rules: List[Tuple[str, bool]] = []
        # True while the directives being read belong to our user agent.
        self.matching = False

    @property
    def host(self) -> Optional[str]:
        if self.robots_url is None:
            return None
        return urlparse(self.robots_url).hostname

    async def parse(self, seed_url: str, session: ClientSession, timeout: float = 10) -> bool:
        """
        Fetch and load robots.txt for the seed URL's host.

        Returns False only when the seed URL itself is malformed. A missing
        robots.txt or a transport failure leaves the policy without rules,
        so every URL is allowed.
        """
        parsed = urlparse(seed_url)
        if parsed.scheme not in ('http', 'https') or not parsed.hostname:
            self.logger.error(f"Malformed seed URL: {seed_url}")
            return False

        robots_url = urljoin(f"{parsed.scheme}://{parsed.netloc}", '/robots.txt')
        try:
            async with session.get(robots_url, timeout=ClientTimeout(total=timeout)) as response:
                if response.status != 200:
                    self.logger.info(f"No robots.txt enforced ({robots_url} returned {response.status})")
                    return True
                text = await response.text()
        except (ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            self.logger.warning(f"Could not fetch robots.txt from {robots_url}: {e}")
            return True

        self.load(robots_url, text)
        return True

    def load(self, robots_url: str, text: str):
        """Load rules from the body of a robots.txt file."""
        self.robots_url = robots_url
        self.rules = []
        self.matching = False

        for line in text.splitlines():
            match = DIRECTIVE_PATTERN.search(line.strip())
            if not match:
                continue

            agent, allow, disallow = match.groups()
            if agent is not None:
                self.matching = re.match(wildcard_to_regex(agent.strip()), self.user_agent) is not None
            elif self.matching:
                raw = allow if allow is not None else disallow
                path = unquote(raw).strip()
                # An empty Disallow path is ignored, not recorded as a deny-all prefix.
                if path:
                    self.rules.append((path, allow is not None))

        self.logger.info(f"Loaded {len(self.rules)} robots.txt rules for '{self.user_agent}' "
                         f"from {robots_url}")

    def allowed(self, url: str) -> bool:
        """Check whether the URL may be crawled."""
        if self.robots_url is None:
            return True

        parsed = urlparse(url)
        if parsed.hostname != self.host:
            return True

        target = parsed.path or '/'
        if parsed.query:
            target += '?' + parsed.query

        for path, verdict in self.rules:
            if target.startswith(path):
                return verdict
        return True
