"""
Change detection for feed items.

Compares a feed's items against the seen-item store and marks the
new ones as seen within the caller's transaction.
"""

import logging
from collections.abc import Iterable

from rss_notify.models import FeedItem
from rss_notify.storage import Transaction

logger = logging.getLogger(__name__)


async def detect_new_items(
    feed_ref: str,
    items: Iterable[FeedItem],
    tx: Transaction,
) -> list[FeedItem]:
    """
    Find the items of a feed that were not seen before.

    Every new item is marked as seen right away, in the same
    transaction, so a repeated ID later in the list is not reported
    twice.

    Parameters
    ----------
    feed_ref : str
        Canonical identifier of the feed.
    items : Iterable[FeedItem]
        The feed's items, in source order.
    tx : Transaction
        Open store transaction; the feed's partition must exist.

    Returns
    -------
    list[FeedItem]
        New items in source order.
    """
    new_items: list[FeedItem] = []

    for item in items:
        if await tx.contains(feed_ref, item.id):
            continue

        new_items.append(item)
        await tx.mark_seen(feed_ref, item.id)
        logger.debug("New item in '%s': %s", feed_ref, item.title[:50])

    if new_items:
        logger.info(
            "Found %d new entr%s in '%s'",
            len(new_items),
            "y" if len(new_items) == 1 else "ies",
            feed_ref,
        )
    else:
        logger.debug("No new entries in '%s'", feed_ref)

    return new_items
