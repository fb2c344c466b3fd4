"""
SQLite storage for crawled pages.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import aiosqlite

from ..models import WikiPage, split_field


SQL_CREATE = """
    CREATE TABLE IF NOT EXISTS pages (
        title TEXT PRIMARY KEY,
        content TEXT NOT NULL,
        categories TEXT NOT NULL,
        lastModify TEXT NOT NULL,
        outLinks TEXT
    )
"""

SQL_INSERT = (
    "INSERT OR IGNORE INTO pages (title, content, categories, lastModify, outLinks) "
    "VALUES (?, ?, ?, ?, ?)"
)

SQL_COUNT = "SELECT COUNT(*) FROM pages"
SQL_SELECT_BATCH = "SELECT title, content, categories FROM pages LIMIT ? OFFSET ?"
SQL_SELECT_PAGE = (
    "SELECT title, content, categories, lastModify, outLinks FROM pages WHERE title = ?"
)


class DatabaseError(Exception):
    """Custom exception for database operations."""
    pass


async def connect(database_path: str, timeout: float = 30.0) -> aiosqlite.Connection:
    """
    Open a connection with manual transaction control.

    Several writers share one database file, so the connection uses WAL
    journaling and waits up to ``timeout`` seconds for a write lock.
    """
    try:
        conn = await aiosqlite.connect(database_path, timeout=timeout)
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
    except aiosqlite.Error as e:
        raise DatabaseError(f"Failed to open database {database_path}: {e}") from e
    return conn


async def initialize_database(database_path: str):
    """Create the pages table if it does not exist yet."""
    conn = await connect(database_path)
    try:
        await conn.execute(SQL_CREATE)
        await conn.commit()
    except aiosqlite.Error as e:
        raise DatabaseError(f"Failed to create tables in {database_path}: {e}") from e
    finally:
        await conn.close()
    logging.getLogger(__name__).info(f"Database initialized at {database_path}")


class PageStore:
    """
    Read access to the pages table.

    This is the interface the indexer consumes: it reads title, content
    and categories in LIMIT/OFFSET batches.
    """

    def __init__(self, database_path: str):
        self.database_path = database_path
        self.conn: Optional[aiosqlite.Connection] = None
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self):
        if self.conn is None:
            self.conn = await connect(self.database_path)

    async def close(self):
        if self.conn is not None:
            await self.conn.close()
            self.conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise DatabaseError("Database not opened")
        return self.conn

    async def count_pages(self) -> int:
        async with self._require_conn().execute(SQL_COUNT) as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def fetch_pages(self, limit: int, offset: int = 0) -> List[Tuple[str, str, List[str]]]:
        """Return (title, content, categories) tuples in storage order."""
        async with self._require_conn().execute(SQL_SELECT_BATCH, (limit, offset)) as cursor:
            rows = await cursor.fetchall()
        return [(title, content, list(split_field(categories))) for title, content, categories in rows]

    async def get_page(self, title: str) -> Optional[WikiPage]:
        """Retrieve a full page by title."""
        async with self._require_conn().execute(SQL_SELECT_PAGE, (title,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return WikiPage.from_row(row)


async def insert_pages(conn: aiosqlite.Connection, rows: Sequence[Tuple]) -> int:
    """
    Insert rows in the open transaction, skipping titles already stored.

    Returns the number of rows actually inserted. The caller commits.
    """
    cursor = await conn.executemany(SQL_INSERT, rows)
    try:
        return max(cursor.rowcount, 0)
    finally:
        await cursor.close()
