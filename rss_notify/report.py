"""
Aggregation of per-feed changes into a single report.
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from rss_notify.models import FeedItem


@dataclass(frozen=True)
class FeedUpdate:
    """
    New items found in one feed during a run.

    Attributes
    ----------
    title : str
        Feed title.
    items : tuple[FeedItem, ...]
        New items in the feed's own order.
    """

    title: str
    items: tuple[FeedItem, ...] = ()


@dataclass(frozen=True)
class Report:
    """
    Ordered list of feed updates for one run.

    An empty report is falsy; nothing should be sent for it.
    """

    updates: tuple[FeedUpdate, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return bool(self.updates)

    def __len__(self) -> int:
        return len(self.updates)

    def __iter__(self) -> Iterator[FeedUpdate]:
        return iter(self.updates)

    @property
    def item_count(self) -> int:
        """Total number of new items across all feeds."""
        return sum(len(update.items) for update in self.updates)


def aggregate(results: Iterable[tuple[str, Sequence[FeedItem]]]) -> Report:
    """
    Build a report from per-feed detection results.

    Parameters
    ----------
    results : Iterable[tuple[str, Sequence[FeedItem]]]
        (feed title, new items) pairs in configured feed order.

    Returns
    -------
    Report
        One update per feed with at least one new item, same order.
    """
    return Report(
        updates=tuple(
            FeedUpdate(title=title, items=tuple(items))
            for title, items in results
            if items
        )
    )
