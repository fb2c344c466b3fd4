#!/usr/bin/env python3
"""
Main entry point for the wiki crawler.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from wikicrawl import __version__
from wikicrawl.crawler.scheduler import WikiCrawler
from wikicrawl.storage.database import DatabaseError, initialize_database
from wikicrawl.utils.config import Config, load_config, validate_config
from wikicrawl.utils.logger import log_system_info, setup_logging
from wikicrawl.utils.monitoring import CrawlMetrics


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.crawler: Optional[WikiCrawler] = None
        self.logger = logging.getLogger(__name__)
        self._crawl_task: Optional[asyncio.Task] = None

    def setup_signal_handlers(self):
        """Cancel the crawl on SIGINT/SIGTERM; workers then drain their writers."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self._crawl_task and not self._crawl_task.done():
                self._crawl_task.cancel()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Not supported on Windows event loops
                pass

    async def run(self, config: Config) -> int:
        """Run the crawler."""
        setup_logging(config.logging)
        log_system_info()

        self.logger.info("=== WIKI CRAWLER STARTING ===")
        self.logger.info(f"Database: {config.database.path}")

        try:
            await initialize_database(config.database.path)
        except DatabaseError as e:
            self.logger.error(f"Invalid database: {e}")
            return 1

        metrics = CrawlMetrics()
        if config.monitoring.metrics_enabled:
            metrics.start_server(config.monitoring.prometheus_port)

        self.crawler = WikiCrawler(config, metrics=metrics)
        self.setup_signal_handlers()
        self._crawl_task = asyncio.create_task(self.crawler.run())

        try:
            await self._crawl_task
        except asyncio.CancelledError:
            self.logger.info(f"Crawl cancelled. {self.crawler.committed_count} pages committed.")
        finally:
            self.logger.info("=== WIKI CRAWLER FINISHED ===")

        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wikicrawl",
        description="Crawl a web encyclopedia into an SQLite database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py pages.db                       # Crawl with the default settings
  python main.py --config config.yaml           # Use a configuration file
  python main.py -t 4 -c 1000 -d 3 pages.db     # 4 workers, 1000 pages, depth 3
  python main.py -l crawl.log pages.db          # Write logs into crawl.log
        """
    )

    parser.add_argument('database', nargs='?', help='path of the SQLite database to write into')
    parser.add_argument('--config', help='path to a YAML configuration file')
    parser.add_argument('-t', '--threads', type=int, dest='workers',
                        help='the number of crawl workers (default: 10)')
    parser.add_argument('-c', '--pages', type=int,
                        help='the number of web pages to crawl (default: 750000)')
    parser.add_argument('-d', '--depth', type=int, dest='max_depth',
                        help='the depth of web pages to crawl (default: 10)')
    parser.add_argument('-i', '--interval', type=int, dest='interval_ms',
                        help='the interval (milliseconds) between two pages of one worker (default: 5000)')
    parser.add_argument('-u', '--entry-url', help='the url of the entry page')
    parser.add_argument('-H', '--host-regex', help='the host the crawled urls must match')
    parser.add_argument('-P', '--path-regex',
                        help='the path the crawled urls must match, with one group capturing the title')
    parser.add_argument('-l', '--log-output', help='the file to write logs into (default: stdout)')
    parser.add_argument('--version', action='version', version=f'wikicrawl {__version__}')
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config).with_overrides(
            crawler={
                'workers': args.workers,
                'pages': args.pages,
                'max_depth': args.max_depth,
                'interval_ms': args.interval_ms,
                'entry_url': args.entry_url,
                'host_regex': args.host_regex,
                'path_regex': args.path_regex,
            },
            database={'path': args.database},
            logging={'file': args.log_output},
        )
        validate_config(config)
    except (FileNotFoundError, ValueError) as e:
        parser.error(str(e))

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(config))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
