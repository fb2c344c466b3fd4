import asyncio

import pytest

from wikicrawl.storage.database import DatabaseError, PageStore, initialize_database
from wikicrawl.storage.writer import PageWriter
from wikicrawl.utils.monitoring import CrawlMetrics


async def count_rows(db_path: str) -> int:
    async with PageStore(db_path) as store:
        return await store.count_pages()


class TestPageWriter:
    @pytest.mark.asyncio
    async def test_pages_become_visible_per_batch(self, initialized_db, writer_factory, make_page):
        committed = []
        writer = await writer_factory(0, initialized_db, batch_size=2, on_complete=committed.append)
        task = asyncio.create_task(writer.run())

        for title in ("A", "B", "C"):
            await writer.queue.put(make_page(title))
        await writer.queue.join()

        # The third page waits for the batch to fill up or the writer to stop.
        assert await count_rows(initialized_db) == 2

        await writer.stop()
        assert await task == 3
        assert await count_rows(initialized_db) == 3
        assert committed == [3]
        assert writer.conn is None

    @pytest.mark.asyncio
    async def test_existing_titles_are_not_overwritten(self, initialized_db, writer_factory, make_page):
        committed = []
        writer = await writer_factory(0, initialized_db, on_complete=committed.append)
        task = asyncio.create_task(writer.run())

        await writer.queue.put(make_page("Dog", content="first"))
        await writer.queue.put(make_page("Dog", content="second"))
        await writer.queue.put(make_page("Cat"))
        await writer.stop()

        assert await task == 2
        assert committed == [2]
        async with PageStore(initialized_db) as store:
            page = await store.get_page("Dog")
        assert page.content == "first"

    @pytest.mark.asyncio
    async def test_stop_with_nothing_queued(self, initialized_db, writer_factory):
        committed = []
        writer = await writer_factory(0, initialized_db, on_complete=committed.append)
        task = asyncio.create_task(writer.run())

        await writer.stop()

        assert await task == 0
        assert committed == [0]

    @pytest.mark.asyncio
    async def test_storage_error_marks_writer_failed(self, db_path, writer_factory, make_page):
        # The database exists but the pages table was never created.
        committed = []
        metrics = CrawlMetrics()
        writer = await writer_factory(3, db_path, batch_size=1,
                                      on_complete=committed.append, metrics=metrics)
        task = asyncio.create_task(writer.run())

        await writer.queue.put(make_page("Dog"))

        assert await asyncio.wait_for(task, timeout=10) == 0
        assert writer.failed
        assert committed == []
        assert metrics.value('wikicrawl_writer_failures_total') == 1
        assert writer.conn is None

    @pytest.mark.asyncio
    async def test_open_failure_raises(self, tmp_path, writer_factory):
        with pytest.raises(DatabaseError):
            await writer_factory(0, str(tmp_path / "missing" / "pages.db"))

    @pytest.mark.asyncio
    async def test_run_without_open_raises(self, initialized_db):
        writer = PageWriter(0, initialized_db, asyncio.Queue())

        with pytest.raises(DatabaseError):
            await writer.run()

    @pytest.mark.asyncio
    async def test_committed_pages_counted_in_metrics(self, initialized_db, writer_factory, make_page):
        metrics = CrawlMetrics()
        writer = await writer_factory(1, initialized_db, metrics=metrics)
        task = asyncio.create_task(writer.run())

        await writer.queue.put(make_page("Dog"))
        await writer.queue.put(make_page("Cat"))
        await writer.stop()
        await task

        assert metrics.value('wikicrawl_pages_committed_total', {'writer': '1'}) == 2


class TestPageStore:
    @pytest.mark.asyncio
    async def test_reads_batches_and_pages(self, initialized_db, writer_factory, make_page):
        writer = await writer_factory(0, initialized_db)
        task = asyncio.create_task(writer.run())
        await writer.queue.put(make_page("Dog", categories=["Animals", "Mammals"],
                                         out_links=["Cat"]))
        await writer.queue.put(make_page("Cat"))
        await writer.stop()
        await task

        async with PageStore(initialized_db) as store:
            assert await store.count_pages() == 2

            first = await store.fetch_pages(limit=1)
            rest = await store.fetch_pages(limit=10, offset=1)
            rows = {title: (content, categories) for title, content, categories in first + rest}
            assert rows == {
                "Dog": ("Dog text", ["Animals", "Mammals"]),
                "Cat": ("Cat text", ["Things"]),
            }

            page = await store.get_page("Dog")
            assert page.out_links == ("Cat",)
            assert page.last_modify.year == 2018
            assert await store.get_page("Wolf") is None

    @pytest.mark.asyncio
    async def test_requires_open(self, initialized_db):
        store = PageStore(initialized_db)

        with pytest.raises(DatabaseError):
            await store.count_pages()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, initialized_db):
        await initialize_database(initialized_db)

        assert await count_rows(initialized_db) == 0
