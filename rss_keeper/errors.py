"""Exception hierarchy for feed fetching and local persistence."""

from __future__ import annotations

from typing import Optional


class FeedError(Exception):
    """Base class for failures while fetching or decoding a single source."""

    def __init__(self, message: str, response_time_ms: Optional[int] = None) -> None:
        super().__init__(message)
        self.response_time_ms = response_time_ms


class TransportError(FeedError):
    """Connection, timeout or body-read failure."""


class ProtocolStatusError(FeedError):
    """The server answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        reason: str = "",
        response_time_ms: Optional[int] = None,
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(
            f"HTTP {status_code} {reason or ''}".strip(), response_time_ms
        )


class ParseFailure(FeedError):
    """The body is neither valid RSS nor valid Atom."""


class PersistenceError(Exception):
    """Base class for state and cache file problems."""


class PersistenceCorruption(PersistenceError):
    """A file exists but matches none of the known shapes."""


class PersistenceIOError(PersistenceError):
    """Reading or writing a file failed at the OS level."""


class CacheWriteError(PersistenceIOError):
    pass


class StateWriteError(PersistenceIOError):
    pass
