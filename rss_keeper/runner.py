"""Refresh cycle: cache lookups, fetches, health updates and aggregation."""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .cache import CacheStore
from .errors import CacheWriteError, FeedError
from .feeds import DEFAULT_TIMEOUT_SECS, FetchedFeed, fetch_feed
from .health import HealthTracker
from .models import FeedItem, FeedSource

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class RefreshReport:
    """Outcome of one refresh cycle."""

    items: List[FeedItem] = field(default_factory=list)
    cached: List[str] = field(default_factory=list)
    fetched: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


def sort_items(items: Sequence[FeedItem]) -> List[FeedItem]:
    """Newest first; undated items sort after every dated one."""
    return sorted(
        items,
        key=lambda item: (item.published is not None, item.published or _OLDEST),
        reverse=True,
    )


@dataclass
class _Attempt:
    source: FeedSource
    fetched: Optional[FetchedFeed] = None
    error: Optional[FeedError] = None


def _attempt(source: FeedSource, session, timeout: float) -> _Attempt:
    try:
        return _Attempt(source, fetched=fetch_feed(source, session, timeout))
    except FeedError as exc:
        return _Attempt(source, error=exc)


def _run_fetches(
    sources: Sequence[FeedSource], session, timeout: float, max_workers: int
) -> List[_Attempt]:
    if max_workers <= 1 or len(sources) <= 1:
        return [_attempt(source, session, timeout) for source in sources]

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(_attempt, source, session, timeout) for source in sources
        ]
        return [future.result() for future in futures]


def refresh_feeds(
    sources: Sequence[FeedSource],
    cache: CacheStore,
    health: HealthTracker,
    session=None,
    timeout: float = DEFAULT_TIMEOUT_SECS,
    force: bool = False,
    max_workers: int = 1,
) -> RefreshReport:
    """Refresh every source and return the aggregated, sorted items.

    Per-source failures are recorded in ``health`` and never raised. Cache
    and health updates happen on the calling thread in subscription order.
    """
    report = RefreshReport()
    per_source: Dict[str, List[FeedItem]] = {}
    to_fetch: List[FeedSource] = []

    for source in sources:
        if not force:
            cached = cache.get(source.url)
            if cached is not None:
                logger.debug("Using cached content for %s", source.url)
                per_source[source.url] = cached
                report.cached.append(source.url)
                continue
        to_fetch.append(source)

    if to_fetch:
        logger.info(
            "Fetching %d of %d feeds (force=%s)", len(to_fetch), len(sources), force
        )

    for attempt in _run_fetches(to_fetch, session, timeout, max_workers):
        url = attempt.source.url
        if attempt.error is not None:
            logger.error("Failed to refresh %s: %s", url, attempt.error)
            health.record_failure(
                url, str(attempt.error), attempt.error.response_time_ms
            )
            report.failed[url] = str(attempt.error)
            continue

        items = attempt.fetched.feed.items
        try:
            cache.put(url, items)
        except CacheWriteError as exc:
            logger.error("Failed to cache feed content for %s: %s", url, exc)
        health.record_success(url, attempt.fetched.response_time_ms)
        per_source[url] = items
        report.fetched.append(url)

    aggregate: List[FeedItem] = []
    for source in sources:
        aggregate.extend(per_source.get(source.url, []))

    report.items = sort_items(aggregate)
    logger.info(
        "Refresh complete: %d items (%d cached, %d fetched, %d failed)",
        len(report.items),
        len(report.cached),
        len(report.fetched),
        len(report.failed),
    )
    return report
