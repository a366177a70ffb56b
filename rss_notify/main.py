"""
Main entry point for RSS Notify.

Runs one check of all configured feeds and sends a single e-mail
listing the new entries.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

import coloredlogs
import yaml

from rss_notify.config import AppConfig, collect_feed_urls, load_config
from rss_notify.detector import detect_new_items
from rss_notify.mailer import EmailNotifier
from rss_notify.models import FeedItem
from rss_notify.notifier import NotificationError, Notifier
from rss_notify.report import Report, aggregate
from rss_notify.rss_parser import FeedFetchError, FeedParser
from rss_notify.storage import Storage, StorageError, Transaction

logger = logging.getLogger(__name__)


def redact_proxy_url(proxy_url: str) -> str:
    """
    Redact credentials from a proxy URL for safe logging.

    Parameters
    ----------
    proxy_url : str
        The proxy URL potentially containing credentials.

    Returns
    -------
    str
        The proxy URL with password redacted.
    """
    try:
        parsed = urlparse(proxy_url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:****@{netloc}"
            return f"{parsed.scheme}://{netloc}{parsed.path}"
        return proxy_url
    except ValueError:
        return "<proxy url>"


class RSSNotify:
    """
    One run of the feed checker.

    Coordinates feed fetching, change detection, storage and the
    notification.
    """

    def __init__(self, config: AppConfig, feed_urls: Sequence[str]):
        """
        Initialize a run.

        Parameters
        ----------
        config : AppConfig
            Application configuration.
        feed_urls : Sequence[str]
            Feed URLs to check, in order.
        """
        self.config = config
        self.feed_urls = list(feed_urls)
        self.storage: Storage | None = None
        self.parser: FeedParser | None = None
        self.notifier: Notifier | None = None

    async def open(self) -> None:
        """
        Create the components that are not set yet.

        Raises
        ------
        StorageError
            If the seen-item store cannot be opened.
        """
        if self.storage is None:
            storage = Storage(self.config.storage.database_path)
            await storage.initialize()
            self.storage = storage

        if self.parser is None:
            proxy_url = self.config.fetch.proxy
            if proxy_url:
                logger.info("Using proxy: %s", redact_proxy_url(proxy_url))

            self.parser = FeedParser(
                timeout=self.config.fetch.request_timeout,
                max_retries=self.config.fetch.max_retries,
                user_agent=self.config.fetch.user_agent,
                proxy_url=proxy_url,
            )

        if self.notifier is None:
            self.notifier = EmailNotifier(self.config.email)

    async def close(self) -> None:
        """Release the HTTP session and database connection."""
        if self.parser:
            await self.parser.close()
        if self.storage:
            await self.storage.close()

    async def run(self) -> Report:
        """
        Check all feeds and send one notification if anything is new.

        Returns
        -------
        Report
            The new items found in this run.

        Raises
        ------
        StorageError
            If the store cannot be opened or the run cannot be committed.
        NotificationError
            If the notification fails; found items stay marked as seen.
        """
        logger.info("Checking %d feed(s)", len(self.feed_urls))

        try:
            await self.open()
            report = await self.check_feeds()

            if not report:
                logger.info("No new entries, not sending a notification")
                return report

            if self.notifier is None:
                raise RuntimeError("Components not initialized")
            await self.notifier.deliver(report)
            return report
        finally:
            await self.close()

    async def check_feeds(self) -> Report:
        """
        Detect new items of every feed inside one store transaction.

        Returns
        -------
        Report
            Feed updates in configured feed order.
        """
        if not self.parser or not self.storage:
            raise RuntimeError("Components not initialized")

        results: list[tuple[str, list[FeedItem]]] = []

        async with self.storage.transaction() as tx:
            for url in self.feed_urls:
                result = await self._check_feed(tx, url)
                if result is not None:
                    results.append(result)

        report = aggregate(results)
        logger.info(
            "Found %d new item(s) in %d feed(s)",
            report.item_count,
            len(report),
        )
        return report

    async def _check_feed(
        self, tx: Transaction, url: str
    ) -> tuple[str, list[FeedItem]] | None:
        """
        Fetch one feed and detect its new items.

        Parameters
        ----------
        tx : Transaction
            The run's store transaction.
        url : str
            URL of the feed.

        Returns
        -------
        tuple[str, list[FeedItem]] | None
            Feed title and new items, or None if the feed was skipped.
        """
        if not self.parser:
            raise RuntimeError("Components not initialized")

        logger.debug("Checking feed: %s", url)

        try:
            feed = await self.parser.fetch_feed(url)
        except FeedFetchError as e:
            logger.warning("Failed fetching feed '%s': %s", url, e.reason)
            return None

        try:
            async with tx.savepoint():
                await tx.ensure_partition(feed.ref)
                new_items = await detect_new_items(feed.ref, feed.items, tx)
        except StorageError as e:
            logger.error("Skipping feed '%s': %s", feed.ref, e)
            return None

        return feed.title, new_items


def setup_logging(verbose: bool = False) -> None:
    """
    Configure application logging.

    Parameters
    ----------
    verbose : bool
        If True, set log level to DEBUG.
    """
    level = logging.DEBUG if verbose else logging.INFO

    coloredlogs.install(
        level=level,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Check RSS/Atom feeds and e-mail new entries",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "urls",
        nargs="*",
        metavar="URL",
        help="Feed URLs to check in addition to the configured ones",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to YAML configuration file",
    )
    parser.add_argument("--to", help="Address to send the e-mail to")
    parser.add_argument("--from", dest="sender", help="Address to send the e-mail as")
    parser.add_argument("--subject", help="Subject of the e-mail")
    parser.add_argument("--addr", help="SMTP server to use, as host:port")
    parser.add_argument("--feeds", help="File with one feed URL per line")
    parser.add_argument("--db", help="Database where feed history is stored")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AppConfig:
    """
    Merge the configuration file with command line overrides.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    AppConfig
        Validated configuration.
    """
    email: dict[str, Any] = {}
    if args.to:
        email["to"] = args.to
    if args.sender:
        email["from"] = args.sender
    if args.subject:
        email["subject"] = args.subject
    if args.addr:
        email["addr"] = args.addr

    overrides: dict[str, Any] = {"email": email}
    if args.feeds:
        overrides["feeds_file"] = args.feeds
    if args.db:
        overrides["storage"] = {"database_path": args.db}

    return load_config(args.config, overrides)


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging(args.verbose)

    try:
        config = build_config(args)
        feed_urls = collect_feed_urls(config, args.urls)
    except FileNotFoundError as e:
        logger.error("%s", e)
        sys.exit(1)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    if not feed_urls:
        logger.warning("No feeds configured")

    app = RSSNotify(config, feed_urls)

    try:
        asyncio.run(app.run())
    except StorageError as e:
        logger.error("Storage failure: %s", e)
        sys.exit(1)
    except NotificationError as e:
        logger.error("Notification failure: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()
