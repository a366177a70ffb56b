"""
Shared fixtures for RSS Notify tests.

Provides common test fixtures for use across all test modules.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from rss_notify.config import AppConfig, EmailConfig, StorageConfig
from rss_notify.models import Feed, FeedItem
from rss_notify.storage import Storage


# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


def make_item(item_id: str, title: str | None = None) -> FeedItem:
    """Build a feed item with predictable title, link and date."""
    return FeedItem(
        id=item_id,
        title=title or f"Entry {item_id}",
        link=f"https://example.com/{item_id}",
        published=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


def make_feed(ref: str, *item_ids: str, title: str | None = None) -> Feed:
    """Build a fetched feed with the given item IDs, in order."""
    return Feed(
        ref=ref,
        title=title or f"Feed {ref}",
        items=tuple(make_item(item_id) for item_id in item_ids),
        url=ref,
    )


@pytest.fixture(name="make_item")
def make_item_fixture():
    """Return the feed item factory."""
    return make_item


@pytest.fixture(name="make_feed")
def make_feed_fixture():
    """Return the fetched feed factory."""
    return make_feed


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def sample_rss_path(fixtures_dir: Path) -> Path:
    """Return path to sample RSS feed file."""
    return fixtures_dir / "sample_rss.xml"


@pytest.fixture
def sample_atom_path(fixtures_dir: Path) -> Path:
    """Return path to sample Atom feed file."""
    return fixtures_dir / "sample_atom.xml"


@pytest.fixture
def sample_config_path(fixtures_dir: Path) -> Path:
    """Return path to sample config file."""
    return fixtures_dir / "sample_config.yaml"


@pytest.fixture
def sample_feeds_path(fixtures_dir: Path) -> Path:
    """Return path to sample feeds list file."""
    return fixtures_dir / "sample_feeds.txt"


@pytest.fixture
def sample_rss_content(sample_rss_path: Path) -> str:
    """Return contents of sample RSS feed."""
    return sample_rss_path.read_text()


@pytest.fixture
def sample_atom_content(sample_atom_path: Path) -> str:
    """Return contents of sample Atom feed."""
    return sample_atom_path.read_text()


@pytest.fixture
def sample_item() -> FeedItem:
    """Create a sample feed item for testing."""
    return FeedItem(
        id="https://example.com/test-entry",
        title="Test Entry Title",
        link="https://example.com/test-entry",
        published=datetime(2024, 1, 1, 12, 0, 5, tzinfo=timezone.utc),
    )


@pytest.fixture
def email_config() -> EmailConfig:
    """Create an e-mail configuration pointing at a test server."""
    return EmailConfig(
        to="reader@example.com",
        sender="rss@example.com",
        subject="[rssnotify] Updated Feeds",
        addr="smtp.example.com:2525",
    )


@pytest.fixture
def minimal_config_dict() -> dict[str, Any]:
    """
    Create a minimal valid configuration dictionary.

    Returns
    -------
    dict
        Configuration dictionary that can be used to create AppConfig.
    """
    return {
        "feeds": ["https://example.com/feed.xml"],
        "feeds_file": None,
    }


@pytest.fixture
def minimal_app_config(email_config: EmailConfig) -> AppConfig:
    """Create a minimal app configuration backed by an in-memory database."""
    return AppConfig(
        feeds=["https://example.com/feed.xml"],
        feeds_file=None,
        email=email_config,
        storage=StorageConfig(database_path=":memory:"),
    )


@pytest_asyncio.fixture
async def in_memory_storage() -> AsyncGenerator[Storage, None]:
    """
    Create an in-memory SQLite storage for testing.

    Yields
    ------
    Storage
        An initialized in-memory storage instance.
    """
    storage = Storage(":memory:")
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def mock_notifier() -> MagicMock:
    """
    Create a mock notifier.

    Returns
    -------
    MagicMock
        A notifier whose deliver method is an AsyncMock.
    """
    notifier = MagicMock()
    notifier.deliver = AsyncMock()
    return notifier
