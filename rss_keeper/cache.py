"""Per-source, TTL-bounded JSON cache of normalized feed items."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .errors import CacheWriteError
from .models import FeedItem

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=60)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    url: str
    content: List[FeedItem]
    last_updated: datetime

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "content": [item.to_dict() for item in self.content],
            "last_updated": self.last_updated.astimezone(timezone.utc).isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        if not isinstance(data, dict):
            raise TypeError("Cache entry must be a JSON object.")
        url = data["url"]
        content = data["content"]
        last_updated = data["last_updated"]
        if not isinstance(url, str) or not isinstance(content, list):
            raise TypeError("Cache entry has unexpected field types.")
        if not isinstance(last_updated, str):
            raise TypeError("Cache entry timestamp must be a string.")
        stamp = datetime.fromisoformat(last_updated)
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return cls(
            url=url,
            content=[FeedItem.from_dict(item) for item in content],
            last_updated=stamp,
        )


def cache_key(url: str) -> str:
    """Filesystem-safe, one-way token for a source URL."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


class CacheStore:
    """JSON file per source URL, valid while younger than ``ttl``."""

    def __init__(
        self,
        cache_dir: Path,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl
        self._clock = clock

    def path_for(self, url: str) -> Path:
        return self.cache_dir / f"{cache_key(url)}.json"

    def _load(self, url: str) -> Optional[CacheEntry]:
        path = self.path_for(url)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("Failed to read cache file for %s: %s", url, exc)
            return None

        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.error(
                "Failed to parse cache file for %s: %s. Removing corrupted cache.",
                url,
                exc,
            )
            try:
                path.unlink()
                logger.info("Removed corrupted cache file for %s", url)
            except OSError as unlink_exc:
                logger.error("Failed to remove corrupted cache file: %s", unlink_exc)
            return None

    def _is_fresh(self, entry: CacheEntry) -> bool:
        age = self._clock() - entry.last_updated
        # Future stamps (clock changes) count as stale.
        return timedelta(0) <= age < self.ttl

    def get(self, url: str) -> Optional[List[FeedItem]]:
        """Return cached items for ``url`` if present, readable and fresh."""
        entry = self._load(url)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            logger.debug("Cache for %s is stale (updated %s)", url, entry.last_updated)
            return None
        return list(entry.content)

    def last_updated(self, url: str) -> Optional[datetime]:
        entry = self._load(url)
        return entry.last_updated if entry else None

    def put(self, url: str, items: List[FeedItem]) -> None:
        """Replace the entry for ``url`` with ``items`` stamped now."""
        entry = CacheEntry(url=url, content=list(items), last_updated=self._clock())
        path = self.path_for(url)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(entry.to_dict(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as exc:
            raise CacheWriteError(f"Failed to write cache for {url}: {exc}") from exc
        logger.debug("Cached %d items for %s at %s", len(items), url, path)

    def clear(self) -> int:
        """Delete every cache entry, returning how many files were removed."""
        if not self.cache_dir.exists():
            return 0
        removed = 0
        for path in self.cache_dir.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as exc:
                logger.error("Failed to remove cache file %s: %s", path, exc)
        logger.info("Cleared %d cache entries from %s", removed, self.cache_dir)
        return removed
