import asyncio
from collections import deque
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from wikicrawl.models import WikiPage
from wikicrawl.storage.database import initialize_database
from wikicrawl.storage.writer import PageWriter
from wikicrawl.utils.config import Config


def article_html(title: str,
                 body: str = "<p>Some text.</p>",
                 categories: Iterable[str] = ("Things",),
                 last_edited: Optional[str] = "This page was last edited on 18 January 2018, at 21:30.",
                 with_content: bool = True,
                 with_categories: bool = True) -> str:
    """A minimal MediaWiki article page."""
    content = (
        f'<div id="mw-content-text"><div class="mw-parser-output">{body}</div></div>'
        if with_content else ''
    )
    items = ''.join(f'<li><a href="/wiki/Category:{c}">{c}</a></li>' for c in categories)
    catlinks = (
        f'<div id="catlinks"><div id="mw-normal-catlinks">'
        f'<a href="/wiki/Help:Category">Categories</a>: <ul>{items}</ul></div></div>'
        if with_categories else ''
    )
    footer = f'<ul><li id="footer-info-lastmod"> {last_edited}</li></ul>' if last_edited else ''
    return (
        f'<!DOCTYPE html><html><head><title>{title}</title></head><body>'
        f'<h1 id="firstHeading">{title}</h1>{content}{catlinks}'
        f'<div id="footer">{footer}</div></body></html>'
    )


class StubWiki:
    """A tiny wiki served over HTTP for crawler tests."""

    def __init__(self):
        self.pages: Dict[str, str] = {}
        self.redirects: Dict[str, deque] = {}
        self.robots: Optional[str] = None
        self.hits: List[str] = []
        self.base_url = ''

    def url(self, path: str) -> str:
        return self.base_url + path

    def add_article(self, title: str, links: Iterable[str] = (), **kwargs) -> str:
        anchors = ' '.join(f'<a href="/wiki/{link}">{link}</a>' for link in links)
        kwargs.setdefault('body', f'<p>{title} is a page.</p><p>See {anchors}</p>')
        path = f'/wiki/{title}'
        self.pages[path] = article_html(title.replace('_', ' '), **kwargs)
        return path

    def add_redirect(self, path: str, *targets: str):
        """Redirect ``path`` to each target in turn, cycling."""
        self.redirects[path] = deque(targets)

    async def handle(self, request: web.Request) -> web.Response:
        path = request.path
        self.hits.append(path)

        if path == '/robots.txt':
            if self.robots is None:
                raise web.HTTPNotFound()
            return web.Response(text=self.robots, content_type='text/plain')

        if path in self.redirects:
            targets = self.redirects[path]
            target = targets[0]
            targets.rotate(-1)
            raise web.HTTPFound(target)

        if path in self.pages:
            return web.Response(text=self.pages[path], content_type='text/html')

        raise web.HTTPNotFound()

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route('GET', '/{tail:.*}', self.handle)
        return app


@pytest_asyncio.fixture
async def stub_wiki():
    wiki = StubWiki()
    server = TestServer(wiki.make_app())
    await server.start_server()
    wiki.base_url = f"http://{server.host}:{server.port}"
    yield wiki
    await server.close()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'pages.db')


@pytest_asyncio.fixture
async def initialized_db(db_path):
    await initialize_database(db_path)
    return db_path


@pytest.fixture
def make_config(db_path):
    def build(wiki: StubWiki, entry_path: str = '/wiki/Seed', **crawler) -> Config:
        settings = {
            'workers': 1,
            'pages': 1,
            'max_depth': 0,
            'interval_ms': 0,
            'entry_url': wiki.url(entry_path),
            'host_regex': r'^127\.0\.0\.1$',
            'path_regex': r'^/wiki/([^:]*)$',
            'user_agent': 'testbot',
            'request_timeout': 5,
        }
        settings.update(crawler)
        return Config().with_overrides(crawler=settings, database={'path': db_path})
    return build


@pytest.fixture
def make_article():
    return article_html


@pytest.fixture
def make_page():
    def build(title: str, **kwargs) -> WikiPage:
        kwargs.setdefault('content', f'{title} text')
        kwargs.setdefault('categories', ['Things'])
        kwargs.setdefault('last_modify', datetime(2018, 1, 18, 21, 30))
        return WikiPage(title=title, **kwargs)
    return build


async def open_writer(writer_id: int, database_path: str, batch_size: int = 50,
                      queue_size: int = 100, **kwargs) -> PageWriter:
    writer = PageWriter(writer_id, database_path, asyncio.Queue(maxsize=queue_size),
                        batch_size=batch_size, **kwargs)
    await writer.open()
    return writer


@pytest.fixture
def writer_factory():
    return open_writer
