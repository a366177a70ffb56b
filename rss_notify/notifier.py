"""
Protocol definition for notification backends.

Defines the common interface that all notifiers must implement.
"""

from typing import Protocol, runtime_checkable

from rss_notify.report import Report


class NotificationError(Exception):
    """Raised when a notification cannot be rendered or delivered."""

    pass


@runtime_checkable
class Notifier(Protocol):
    """
    Protocol defining the interface for notification backends.

    The @runtime_checkable decorator allows using isinstance() checks
    against this protocol for structural typing validation.
    """

    async def deliver(self, report: Report) -> None:
        """
        Render a report and deliver it as one notification.

        Parameters
        ----------
        report : Report
            The non-empty report of new items.

        Raises
        ------
        NotificationError
            If the message cannot be rendered or delivered.
        """
        ...
