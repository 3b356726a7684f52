"""Durable subscriptions and read/favorite sets with legacy schema support.

Three on-disk shapes have shipped over time:

* current: ``{"feeds": [{"url", "title", "category"}], "read_items", "favorites"}``
* middle:  ``{"feeds": ["url", ...], "read_items", "favorites"}``
* legacy:  ``{"feeds": ["url", ...], "read_items"}``

Each shape has its own variant class. Loading tries them newest first and
upgrades the first match into :class:`PersistedState`. Saving always writes
the current shape.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence, Set, Type

from .errors import PersistenceCorruption, StateWriteError
from .models import FeedSource, PersistedState

logger = logging.getLogger(__name__)

CORRUPTED_STATE_WARNING = (
    "Feeds data was corrupted and has been cleared. Starting fresh."
)


def _string_set(value: Any) -> Optional[Set[str]]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return None
    return set(value)


def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return None
    return list(value)


def _feed_record(value: Any) -> Optional[FeedSource]:
    if not isinstance(value, dict):
        return None
    url = value.get("url")
    title = value.get("title")
    category = value.get("category")
    if not isinstance(url, str) or not isinstance(title, str):
        return None
    if category is not None and not isinstance(category, str):
        return None
    return FeedSource(url=url, title=title, category=category)


def _sources_from_urls(urls: List[str]) -> List[FeedSource]:
    return [FeedSource(url=url, title=url, category=None) for url in urls]


@dataclass
class CurrentSchema:
    feeds: List[FeedSource]
    read_items: Set[str]
    favorites: Set[str]

    @classmethod
    def match(cls, payload: Any) -> Optional["CurrentSchema"]:
        if not isinstance(payload, dict) or not isinstance(payload.get("feeds"), list):
            return None
        feeds = [_feed_record(record) for record in payload["feeds"]]
        read_items = _string_set(payload.get("read_items"))
        favorites = _string_set(payload.get("favorites"))
        if any(feed is None for feed in feeds) or read_items is None or favorites is None:
            return None
        return cls(feeds=feeds, read_items=read_items, favorites=favorites)

    def upgrade(self) -> PersistedState:
        return PersistedState(
            feeds=self.feeds, read_items=self.read_items, favorites=self.favorites
        )


@dataclass
class MiddleSchema:
    feeds: List[str]
    read_items: Set[str]
    favorites: Set[str]

    @classmethod
    def match(cls, payload: Any) -> Optional["MiddleSchema"]:
        if not isinstance(payload, dict):
            return None
        feeds = _string_list(payload.get("feeds"))
        read_items = _string_set(payload.get("read_items"))
        favorites = _string_set(payload.get("favorites"))
        if feeds is None or read_items is None or favorites is None:
            return None
        return cls(feeds=feeds, read_items=read_items, favorites=favorites)

    def upgrade(self) -> PersistedState:
        return PersistedState(
            feeds=_sources_from_urls(self.feeds),
            read_items=self.read_items,
            favorites=self.favorites,
        )


@dataclass
class LegacySchema:
    feeds: List[str]
    read_items: Set[str] = field(default_factory=set)

    @classmethod
    def match(cls, payload: Any) -> Optional["LegacySchema"]:
        if not isinstance(payload, dict):
            return None
        feeds = _string_list(payload.get("feeds"))
        read_items = _string_set(payload.get("read_items"))
        if feeds is None or read_items is None:
            return None
        return cls(feeds=feeds, read_items=read_items)

    def upgrade(self) -> PersistedState:
        return PersistedState(
            feeds=_sources_from_urls(self.feeds),
            read_items=self.read_items,
            favorites=set(),
        )


SCHEMAS: Sequence[Type] = (CurrentSchema, MiddleSchema, LegacySchema)


def parse_state(payload: Any) -> PersistedState:
    """Upgrade a decoded JSON document into the current state shape.

    Raises:
        PersistenceCorruption: if no known schema matches.
    """
    for schema in SCHEMAS:
        matched = schema.match(payload)
        if matched is not None:
            logger.debug("State file matched %s", schema.__name__)
            return matched.upgrade()
    raise PersistenceCorruption("State file matches no known schema.")


@dataclass
class LoadResult:
    state: PersistedState
    warning: Optional[str] = None


class StateStore:
    """Reads and rewrites the subscriptions file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> LoadResult:
        """Load persisted state, discarding the file if it is unusable."""
        if not self.path.exists():
            logger.info("No state file at %s; starting empty", self.path)
            return LoadResult(PersistedState())

        try:
            state = parse_state(json.loads(self.path.read_bytes()))
        except (OSError, ValueError, PersistenceCorruption) as exc:
            logger.error(
                "Failed to load feeds file %s: %s. Clearing corrupted data.",
                self.path,
                exc,
            )
            self._discard()
            return LoadResult(PersistedState(), CORRUPTED_STATE_WARNING)

        logger.debug(
            "Loaded %d feeds, %d read items and %d favorites from %s",
            len(state.feeds),
            len(state.read_items),
            len(state.favorites),
            self.path,
        )
        return LoadResult(state)

    def _discard(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Failed to remove corrupted file %s: %s", self.path, exc)

    def save(self, state: PersistedState) -> None:
        """Rewrite the whole file in the current schema."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(state.to_dict(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as exc:
            raise StateWriteError(f"Failed to save {self.path}: {exc}") from exc
        logger.debug(
            "Saved %d feeds, %d read items and %d favorites to %s",
            len(state.feeds),
            len(state.read_items),
            len(state.favorites),
            self.path,
        )
