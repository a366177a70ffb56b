"""
Data types for fetched feeds and their items.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _struct_to_datetime(value: time.struct_time | None) -> datetime | None:
    """Convert a feedparser UTC time tuple to an aware datetime."""
    if not value:
        return None
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class FeedItem:
    """
    One entry of a feed.

    Attributes
    ----------
    id : str
        Identifier of the entry, unique within its feed.
    title : str
        Entry title.
    link : str
        Entry URL.
    published : datetime
        Publication time (UTC).
    """

    id: str
    title: str = ""
    link: str = ""
    published: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_feedparser(cls, entry: Any, fetched_at: datetime) -> "FeedItem":
        """
        Create a FeedItem from a feedparser entry.

        Parameters
        ----------
        entry : Any
            A feedparser entry object.
        fetched_at : datetime
            Used as publication time when the entry carries none.

        Returns
        -------
        FeedItem
            Normalized item instance.

        Raises
        ------
        ValueError
            If the entry has no id, link or title to identify it.
        """
        title = entry.get("title", "") or ""
        link = entry.get("link", "") or ""
        item_id = entry.get("id", "") or link or title
        if not item_id:
            raise ValueError("Entry has no id, link or title")

        published = (
            _struct_to_datetime(entry.get("published_parsed"))
            or _struct_to_datetime(entry.get("updated_parsed"))
            or fetched_at
        )

        return cls(id=item_id, title=title, link=link, published=published)


@dataclass(frozen=True)
class Feed:
    """
    Result of fetching one feed.

    Attributes
    ----------
    ref : str
        Canonical update URL, stable across polls.
    title : str
        Feed title.
    items : tuple[FeedItem, ...]
        Items in the order the feed lists them.
    url : str
        URL the feed was requested with.
    """

    ref: str
    title: str
    items: tuple[FeedItem, ...] = ()
    url: str = ""
