"""Rendering helpers for notification e-mails."""

from __future__ import annotations

import datetime

from .templating import get_environment


def build_email_html(notification) -> str:
    """Render the HTML email body using the Jinja2 template."""
    env = get_environment()
    template = env.get_template("notification.html.j2")
    today = datetime.date.today().strftime("%B %d, %Y")
    return template.render(notification=notification, date=today)


def build_email_text(notification) -> str:
    """Render the plain-text email body using the Jinja2 template."""
    env = get_environment()
    template = env.get_template("notification.txt.j2")
    return template.render(notification=notification)
