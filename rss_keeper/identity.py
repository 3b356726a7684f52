"""Stable identifiers for feed entries."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Optional

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _slugify(title: str) -> str:
    return "".join(char if char.isalnum() else "_" for char in title.lower())


def _url_hash(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]


def _nanoseconds(published: datetime) -> int:
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    delta = published - _EPOCH
    micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
    return max(micros, 0) * 1_000


def make_item_id(title: str, source_url: str, published: Optional[datetime]) -> str:
    """Derive the deduplication key for an entry.

    The key combines a slug of the raw entry title with a hash of the source
    URL and, when known, the publish time in nanoseconds since the epoch.
    Feeds often lack usable GUIDs, so only fields that recur on every fetch
    are used.
    """
    base = f"{_slugify(title)}_{_url_hash(source_url)}"
    if published is None:
        return base
    return f"{base}_{_nanoseconds(published)}"
