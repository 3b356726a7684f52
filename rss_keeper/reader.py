"""Reader session: subscriptions, item state, seen set and refresh entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .cache import CacheStore
from .config import AppConfig, AppPaths
from .errors import PersistenceIOError
from .feeds import validate_and_get_feed_title
from .health import HealthTracker
from .models import FeedHealth, FeedItem, FeedSource, PersistedState
from .notifications import build_notification, build_sink, deliver, find_new_items
from .runner import RefreshReport, refresh_feeds, sort_items
from .state import StateStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ImportResult:
    added: int = 0
    duplicate: int = 0
    invalid: int = 0

    def message(self) -> str:
        parts = []
        if self.added:
            parts.append(f"{self.added} added")
        if self.duplicate:
            parts.append(f"{self.duplicate} duplicate")
        if self.invalid:
            parts.append(f"{self.invalid} invalid")
        if not parts:
            return "Import: nothing to import"
        return "Import: " + ", ".join(parts)


class FeedReader:
    """Owns the engine objects for one interactive session.

    The caller must not run :meth:`refresh` concurrently with itself; there is
    no internal locking.
    """

    def __init__(
        self,
        config: AppConfig,
        paths: AppPaths,
        session=None,
        sink=None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.paths = paths
        self.session = session
        self.sink = sink or build_sink(config.email)
        self.cache = CacheStore(
            paths.cache_dir, timedelta(minutes=config.cache_duration_mins), clock
        )
        self.health_tracker = HealthTracker(clock)
        self.state_store = StateStore(paths.state_file)
        self.state = PersistedState()
        self.seen_items: Set[str] = set()
        self.current_items: List[FeedItem] = []
        self.last_refresh: Optional[datetime] = None
        self._warnings: List[str] = []
        self._clock = clock

    @property
    def feeds(self) -> List[FeedSource]:
        return self.state.feeds

    def load(self) -> None:
        result = self.state_store.load()
        self.state = result.state
        if result.warning:
            self._warn(result.warning)

    def start(self, refresh: bool = True) -> None:
        """Load state, seed the seen set from the cache and run a first refresh.

        Seeding from valid cache entries keeps the first refresh from
        announcing articles the user has already been shown.
        """
        self.load()
        if self.feeds:
            cached = self._cached_items()
            self.seen_items.update(item.id for item in cached)
            self.current_items = sort_items(cached)
            logger.info(
                "Seeded %d seen items from cache for %d feeds",
                len(self.seen_items),
                len(self.feeds),
            )
            if refresh:
                self.refresh()
        self.last_refresh = self._clock()

    def _cached_items(self) -> List[FeedItem]:
        items: List[FeedItem] = []
        for feed in self.feeds:
            cached = self.cache.get(feed.url)
            if cached:
                items.extend(cached)
        return items

    def refresh(self, force: bool = False) -> RefreshReport:
        """Run one refresh cycle and notify about unseen items."""
        report = refresh_feeds(
            self.feeds,
            self.cache,
            self.health_tracker,
            session=self.session,
            timeout=self.config.http_timeout_secs,
            force=force,
            max_workers=self.config.max_workers,
        )

        if self.config.notifications_enabled:
            notification = build_notification(
                find_new_items(report.items, self.seen_items)
            )
            if notification is not None:
                deliver(self.sink, notification)

        self.seen_items.update(item.id for item in report.items)
        self.current_items = report.items
        self.last_refresh = self._clock()
        return report

    def get(self, url: str) -> Optional[List[FeedItem]]:
        return self.cache.get(url)

    def health(self, url: str) -> FeedHealth:
        return self.health_tracker.get(url)

    def _refresh_interval(self) -> Optional[timedelta]:
        if self.config.auto_refresh_mins == 0:
            return None
        return timedelta(minutes=self.config.auto_refresh_mins)

    def refresh_due(self, now: Optional[datetime] = None) -> bool:
        interval = self._refresh_interval()
        if interval is None or not self.feeds:
            return False
        if self.last_refresh is None:
            return True
        return (now or self._clock()) - self.last_refresh >= interval

    def time_until_next_refresh(
        self, now: Optional[datetime] = None
    ) -> Optional[timedelta]:
        interval = self._refresh_interval()
        if interval is None:
            return None
        if self.last_refresh is None:
            return timedelta(0)
        remaining = interval - ((now or self._clock()) - self.last_refresh)
        return max(remaining, timedelta(0))

    def _warn(self, message: str) -> None:
        logger.warning("%s", message)
        self._warnings.append(message)

    def pop_warnings(self) -> List[str]:
        warnings, self._warnings = self._warnings, []
        return warnings

    def _persist(self) -> bool:
        """Write state; on failure the in-memory change stands."""
        try:
            self.state_store.save(self.state)
        except PersistenceIOError as exc:
            self._warn(f"Failed to save feeds: {exc}")
            return False
        return True

    def find_feed(self, url: str) -> Optional[FeedSource]:
        for feed in self.feeds:
            if feed.url == url:
                return feed
        return None

    def add_feed(self, url: str, category: Optional[str] = None) -> bool:
        """Validate ``url`` as a feed and subscribe to it."""
        url = url.strip()
        if self.find_feed(url) is not None:
            self._warn(f"Feed already subscribed: {url}")
            return False

        title = validate_and_get_feed_title(
            url, self.session, self.config.http_timeout_secs
        )
        if title is None:
            self._warn(f"Invalid RSS feed URL: {url}")
            return False

        category = (category or "").strip() or None
        self.feeds.append(FeedSource(url=url, title=title, category=category))
        logger.info("Added feed %s (%s)", title, url)
        self._persist()
        return True

    def import_feeds(self, text: str) -> ImportResult:
        """Subscribe to every URL in ``text`` (one per line)."""
        result = ImportResult()
        urls = [line.strip() for line in text.splitlines() if line.strip()]
        for url in urls:
            if self.find_feed(url) is not None:
                result.duplicate += 1
                continue
            title = validate_and_get_feed_title(
                url, self.session, self.config.http_timeout_secs
            )
            if title is None:
                logger.debug("Invalid RSS feed URL during import: %s", url)
                result.invalid += 1
                continue
            self.feeds.append(FeedSource(url=url, title=title))
            result.added += 1

        if result.added:
            self._persist()
        logger.info("%s", result.message())
        return result

    def delete_feed(self, url: str) -> bool:
        feed = self.find_feed(url)
        if feed is None:
            return False
        self.feeds.remove(feed)
        self.current_items = [
            item for item in self.current_items if item.feed_url != url
        ]
        logger.info("Deleted feed %s", url)
        self._persist()
        return True

    def set_category(self, url: str, category: Optional[str]) -> bool:
        """Assign ``category`` to a feed; a blank value clears it."""
        feed = self.find_feed(url)
        if feed is None:
            return False
        category = (category or "").strip()
        feed.category = category or None
        if feed.category:
            logger.info("Set category '%s' for feed: %s", feed.category, feed.title)
        else:
            logger.info("Cleared category for feed: %s", feed.title)
        self._persist()
        return True

    def categories(self) -> List[str]:
        return sorted({feed.category for feed in self.feeds if feed.category})

    def feeds_by_category(self) -> List[Tuple[Optional[str], List[FeedSource]]]:
        """Uncategorized feeds first, then categories alphabetically."""
        grouped: Dict[Optional[str], List[FeedSource]] = {}
        for feed in self.feeds:
            grouped.setdefault(feed.category, []).append(feed)
        return sorted(
            grouped.items(), key=lambda pair: (pair[0] is not None, pair[0] or "")
        )

    def find_item(self, item_id: str) -> Optional[FeedItem]:
        for item in self.current_items:
            if item.id == item_id:
                return item
        return None

    def is_read(self, item: FeedItem) -> bool:
        return item.id in self.state.read_items

    def is_favorite(self, item: FeedItem) -> bool:
        return item.id in self.state.favorites

    def toggle_read(self, item_id: str) -> bool:
        """Flip the read flag, returning the new value."""
        if item_id in self.state.read_items:
            self.state.read_items.discard(item_id)
            logger.debug("Marked item as unread: %s", item_id)
            now_read = False
        else:
            self.state.read_items.add(item_id)
            logger.debug("Marked item as read: %s", item_id)
            now_read = True
        self._persist()
        return now_read

    def mark_read(self, item_id: str) -> bool:
        if item_id in self.state.read_items:
            return False
        self.state.read_items.add(item_id)
        self._persist()
        return True

    def mark_all_read(self, items: Optional[Iterable[FeedItem]] = None) -> int:
        targets = self.current_items if items is None else items
        marked = 0
        for item in targets:
            if item.id not in self.state.read_items:
                self.state.read_items.add(item.id)
                marked += 1
        if marked:
            self._persist()
        return marked

    def toggle_favorite(self, item_id: str) -> bool:
        """Flip the favorite flag, returning the new value."""
        if item_id in self.state.favorites:
            self.state.favorites.discard(item_id)
            logger.debug("Removed item from favorites: %s", item_id)
            now_favorite = False
        else:
            self.state.favorites.add(item_id)
            logger.debug("Added item to favorites: %s", item_id)
            now_favorite = True
        self._persist()
        return now_favorite

    def favorites(self) -> List[FeedItem]:
        return [item for item in self.current_items if self.is_favorite(item)]

    def visible_items(self, query: str = "", unread_only: bool = False) -> List[FeedItem]:
        needle = query.lower()
        return [
            item
            for item in self.current_items
            if (
                not needle
                or needle in item.title.lower()
                or needle in item.description.lower()
            )
            and not (unread_only and self.is_read(item))
        ]

    def count_total(self, url: str) -> int:
        return len(self.cache.get(url) or [])

    def count_unread(self, url: str) -> int:
        return sum(1 for item in self.cache.get(url) or [] if not self.is_read(item))
