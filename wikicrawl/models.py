"""
Records exchanged between the crawl workers and the persistence writers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Tuple


LAST_MODIFY_FORMAT = "%Y-%m-%d %H:%M"
LIST_SEPARATOR = "|"


@dataclass(frozen=True)
class WikiPage:
    """A single extracted encyclopedia page."""
    title: str
    content: str
    categories: Tuple[str, ...]
    last_modify: datetime
    out_links: Tuple[str, ...] = ()

    def __post_init__(self):
        # Lists handed in by callers are frozen into tuples.
        object.__setattr__(self, 'categories', tuple(self.categories))
        object.__setattr__(self, 'out_links', tuple(self.out_links))

        if not self.content:
            raise ValueError(f"Page '{self.title}' has no content")
        if not self.categories:
            raise ValueError(f"Page '{self.title}' has no categories")

    def to_row(self) -> Tuple[str, str, str, str, str]:
        """Convert to a row for the pages table."""
        return (
            self.title,
            self.content,
            LIST_SEPARATOR.join(self.categories),
            self.last_modify.strftime(LAST_MODIFY_FORMAT),
            LIST_SEPARATOR.join(self.out_links),
        )

    @classmethod
    def from_row(cls, row: Sequence[Optional[str]]) -> 'WikiPage':
        """Create a WikiPage from a pages table row."""
        title, content, categories, last_modify, out_links = row
        return cls(
            title=title,
            content=content,
            categories=split_field(categories),
            last_modify=datetime.strptime(last_modify, LAST_MODIFY_FORMAT),
            out_links=split_field(out_links),
        )


@dataclass(frozen=True)
class FrontierItem:
    """A URL waiting in a worker's frontier, with its BFS depth from the seed."""
    url: str
    depth: int = 0

    def __post_init__(self):
        if self.depth < 0:
            raise ValueError(f"Negative crawl depth for {self.url}: {self.depth}")


def split_field(value: Optional[str]) -> Tuple[str, ...]:
    """Split a "|"-joined column back into its items; empty or NULL is ()."""
    if not value:
        return ()
    return tuple(value.split(LIST_SEPARATOR))
