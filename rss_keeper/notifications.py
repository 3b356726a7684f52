"""New-article notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set

from .config import EmailConfig
from .emailing import send_email_report
from .models import FeedItem

logger = logging.getLogger(__name__)

MAX_LISTED_TITLES = 3


@dataclass
class Notification:
    summary: str
    body: str
    items: Sequence[FeedItem] = ()


def find_new_items(items: Iterable[FeedItem], seen: Set[str]) -> List[FeedItem]:
    """Items whose identity is not in ``seen``, in the given order."""
    new_items: List[FeedItem] = []
    reported: Set[str] = set()
    for item in items:
        if item.id in seen or item.id in reported:
            continue
        reported.add(item.id)
        new_items.append(item)
    return new_items


def build_notification(new_items: Sequence[FeedItem]) -> Optional[Notification]:
    """Summarize up to three new titles, or ``None`` when nothing is new."""
    count = len(new_items)
    if count == 0:
        return None

    summary = "1 new article" if count == 1 else f"{count} new articles"
    lines = [f"• {item.title}" for item in new_items[:MAX_LISTED_TITLES]]
    if count > MAX_LISTED_TITLES:
        lines.append(f"+{count - MAX_LISTED_TITLES} more")
    return Notification(summary=summary, body="\n".join(lines), items=tuple(new_items))


class LogNotificationSink:
    """Writes notifications to the application log."""

    def send(self, notification: Notification) -> None:
        logger.info("%s\n%s", notification.summary, notification.body)


class EmailNotificationSink:
    """Delivers notifications by e-mail through Resend."""

    def __init__(self, email: EmailConfig) -> None:
        self.email = email

    def send(self, notification: Notification) -> None:
        sent = send_email_report(
            notification,
            to_address=self.email.to_addr,
            from_address=self.email.from_addr,
            subject=self.email.subject,
        )
        if not sent:
            raise RuntimeError(f"E-mail to {self.email.to_addr} was not sent")


def build_sink(email: EmailConfig):
    if email.to_addr:
        return EmailNotificationSink(email)
    return LogNotificationSink()


def deliver(sink, notification: Notification) -> bool:
    """Fire-and-forget delivery; failures are logged, never raised."""
    try:
        sink.send(notification)
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to send notification: %s", exc)
        return False
    logger.info("Sent notification for %d new article(s)", len(notification.items))
    return True
