"""Email delivery via Resend."""

from __future__ import annotations

import logging
import os
from typing import Optional

from .renderers import build_email_html, build_email_text

logger = logging.getLogger(__name__)

try:  # pragma: no cover - dependency optional unless email requested
    import resend
except ImportError:  # pragma: no cover
    resend = None


def send_email_report(
    notification,
    to_address: Optional[str],
    from_address: Optional[str] = None,
    subject: Optional[str] = None,
) -> bool:
    """Send a new-articles notification via Resend.

    Returns ``True`` only when Resend accepted the message.
    """
    if resend is None:
        logger.error(
            "resend package is required for email notifications, but it's not installed."
        )
        return False

    if not to_address:
        logger.error("No recipient configured; skipping email delivery.")
        return False

    api_key = os.environ.get("RESEND_API_KEY")
    if not api_key:
        logger.error(
            "RESEND_API_KEY environment variable is not set; skipping email delivery."
        )
        return False

    sender = from_address or os.environ.get("RESEND_FROM_EMAIL")
    if not sender:
        logger.error(
            "Sender email is not configured. Set email.from or RESEND_FROM_EMAIL."
        )
        return False

    html_content = build_email_html(notification)
    if not html_content:
        logger.warning("Email content is empty; skipping email delivery.")
        return False

    resend.api_key = api_key
    try:
        response = resend.Emails.send(
            {
                "from": sender,
                "to": [to_address],
                "subject": subject or notification.summary,
                "html": html_content,
                "text": build_email_text(notification),
            }
        )
        logger.info(
            "Sent email to %s via Resend (id %s)",
            to_address,
            getattr(response, "id", "unknown"),
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to send email via Resend: %s", exc)
        return False
    return True
