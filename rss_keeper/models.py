"""Shared data models for rss_keeper."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be a string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class FeedSource:
    """A subscription to a single RSS or Atom feed."""

    url: str
    title: str
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "title": self.title, "category": self.category}


@dataclass(frozen=True)
class FeedItem:
    """Normalized feed entry shared by the RSS and Atom decoders."""

    title: str
    description: str
    link: str
    published: Optional[datetime]
    id: str
    feed_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "published": _format_timestamp(self.published),
            "id": self.id,
            "feed_url": self.feed_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedItem":
        """Rebuild an item from its cached form.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` when the payload
        does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise TypeError("Cached item must be an object.")
        for key in ("title", "description", "link", "id"):
            if not isinstance(data[key], str):
                raise TypeError(f"Cached item field '{key}' must be a string.")
        feed_url = data.get("feed_url", "")
        if not isinstance(feed_url, str):
            raise TypeError("Cached item field 'feed_url' must be a string.")
        return cls(
            title=data["title"],
            description=data["description"],
            link=data["link"],
            published=_parse_timestamp(data.get("published")),
            id=data["id"],
            feed_url=feed_url,
        )


class FeedStatus(Enum):
    HEALTHY = "healthy"
    SLOW = "slow"
    BROKEN = "broken"
    UNKNOWN = "unknown"


_STATUS_INDICATORS = {
    FeedStatus.HEALTHY: "●",
    FeedStatus.SLOW: "◐",
    FeedStatus.BROKEN: "✗",
    FeedStatus.UNKNOWN: "○",
}


@dataclass
class FeedHealth:
    """Operational status of a source across fetch attempts."""

    status: FeedStatus = FeedStatus.UNKNOWN
    last_success: Optional[datetime] = None
    last_response_time_ms: Optional[int] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0

    def status_indicator(self) -> str:
        return _STATUS_INDICATORS[self.status]

    def status_description(self) -> str:
        """Short human readable summary of the last attempt."""
        if self.status is FeedStatus.HEALTHY:
            if self.last_response_time_ms is not None:
                return f"OK ({self.last_response_time_ms}ms)"
            return "OK"
        if self.status is FeedStatus.SLOW:
            if self.last_response_time_ms is not None:
                return f"Slow ({self.last_response_time_ms}ms)"
            return "Slow"
        if self.status is FeedStatus.BROKEN:
            if self.last_error:
                return f"Error: {self.last_error}"
            return "Broken"
        return "Not checked"


@dataclass
class PersistedState:
    """Subscriptions plus the read and favorite identity sets."""

    feeds: List[FeedSource] = field(default_factory=list)
    read_items: Set[str] = field(default_factory=set)
    favorites: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feeds": [feed.to_dict() for feed in self.feeds],
            "read_items": sorted(self.read_items),
            "favorites": sorted(self.favorites),
        }
