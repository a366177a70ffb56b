"""
E-mail notification client.

Renders a report as a plain-text message and sends it over SMTP.
"""

import logging
from dataclasses import dataclass
from email.message import EmailMessage

import aiosmtplib

from rss_notify.config import EmailConfig
from rss_notify.notifier import NotificationError
from rss_notify.report import FeedUpdate, Report

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class MessageContext:
    """
    Everything needed to render one notification message.

    Attributes
    ----------
    to : str
        Recipient address.
    sender : str
        Sender address.
    subject : str
        Subject line.
    updates : tuple[FeedUpdate, ...]
        Feed updates to list in the body.
    """

    to: str
    sender: str
    subject: str
    updates: tuple[FeedUpdate, ...]

    @classmethod
    def build(cls, config: EmailConfig, report: Report) -> "MessageContext":
        """Build the rendering input from configuration and a report."""
        return cls(
            to=config.to,
            sender=config.sender,
            subject=config.subject,
            updates=report.updates,
        )


def render_body(updates: tuple[FeedUpdate, ...]) -> str:
    """
    Render the plain-text body listing new items grouped by feed.

    Parameters
    ----------
    updates : tuple[FeedUpdate, ...]
        Feed updates in report order.

    Returns
    -------
    str
        Message body.
    """
    parts = []

    for update in updates:
        parts.append(f"* {update.title}\n")
        for item in update.items:
            date = item.published.strftime(DATE_FORMAT)
            parts.append(f"\n{date} - {item.title or 'No title'}\n{item.link}\n")
        parts.append("\n")

    return "".join(parts)


def render_message(context: MessageContext) -> EmailMessage:
    """
    Render a notification e-mail.

    Parameters
    ----------
    context : MessageContext
        Headers and feed updates.

    Returns
    -------
    EmailMessage
        The message, ready to send.

    Raises
    ------
    NotificationError
        If a header or the body cannot be encoded.
    """
    message = EmailMessage()
    try:
        message["To"] = context.to
        message["From"] = context.sender
        message["Subject"] = context.subject
        message.set_content(render_body(context.updates))
    except (ValueError, TypeError) as e:
        raise NotificationError(f"Failed to render message: {e}") from e
    return message


class EmailNotifier:
    """
    SMTP notification client.

    Sends one plain-text e-mail per report to a single recipient,
    without authentication.
    """

    def __init__(self, config: EmailConfig):
        """
        Initialize the e-mail notifier.

        Parameters
        ----------
        config : EmailConfig
            Addresses, subject and SMTP server.
        """
        self.config = config

    async def deliver(self, report: Report) -> None:
        """
        Send a report as an e-mail.

        Parameters
        ----------
        report : Report
            The report to send.

        Raises
        ------
        NotificationError
            If rendering or sending fails.
        """
        message = render_message(MessageContext.build(self.config, report))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.config.host,
                port=self.config.port,
                timeout=self.config.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise NotificationError(
                f"Failed sending message via {self.config.addr}: {e}"
            ) from e

        logger.info(
            "Sent notification to %s with %d new item(s) from %d feed(s)",
            self.config.to,
            report.item_count,
            len(report),
        )
