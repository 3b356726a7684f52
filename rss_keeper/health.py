"""Per-source health bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .models import FeedHealth, FeedStatus

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 5000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthTracker:
    """Health records keyed by source URL, rebuilt every session."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._records: Dict[str, FeedHealth] = {}
        self._clock = clock

    def get(self, url: str) -> FeedHealth:
        record = self._records.get(url)
        if record is None:
            return FeedHealth()
        return replace(record)

    def record_success(self, url: str, response_time_ms: int) -> FeedHealth:
        status = (
            FeedStatus.SLOW if response_time_ms > SLOW_THRESHOLD_MS else FeedStatus.HEALTHY
        )
        record = FeedHealth(
            status=status,
            last_success=self._clock(),
            last_response_time_ms=response_time_ms,
            last_error=None,
            consecutive_failures=0,
        )
        self._records[url] = record
        if status is FeedStatus.SLOW:
            logger.info("Feed %s is slow (%dms)", url, response_time_ms)
        return replace(record)

    def record_failure(
        self, url: str, error: str, response_time_ms: Optional[int] = None
    ) -> FeedHealth:
        record = self._records.setdefault(url, FeedHealth())
        record.status = FeedStatus.BROKEN
        record.last_error = error
        if response_time_ms is not None:
            record.last_response_time_ms = response_time_ms
        record.consecutive_failures += 1
        logger.warning(
            "Feed %s marked broken (%d consecutive failures): %s",
            url,
            record.consecutive_failures,
            error,
        )
        return replace(record)

    def __contains__(self, url: str) -> bool:
        return url in self._records

    def __len__(self) -> int:
        return len(self._records)
