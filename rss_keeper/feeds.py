"""Feed fetching and RSS/Atom decoding helpers."""

from __future__ import annotations

import calendar
import logging
import re
import time
import xml.sax
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import feedparser
import requests
from bs4 import BeautifulSoup

from .errors import FeedError, ParseFailure, ProtocolStatusError, TransportError
from .identity import make_item_id
from .models import FeedItem, FeedSource

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECS = 30
NO_TITLE = "No title"
NO_DESCRIPTION = "No description"


@dataclass
class DecodedFeed:
    """Items and channel metadata produced by a decoder."""

    format: str
    title: str
    items: List[FeedItem]


@dataclass
class FetchedFeed:
    """A successfully fetched and decoded source."""

    feed: DecodedFeed
    response_time_ms: int


Decoder = Callable[[feedparser.FeedParserDict, FeedSource], Optional[DecodedFeed]]


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser UTC timestamps to timezone-aware datetimes."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (OverflowError, ValueError, TypeError):
        return None


def _strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def _build_item(
    entry, source: FeedSource, description: Optional[str], published
) -> FeedItem:
    raw_title = entry.get("title") or NO_TITLE
    description = (description or NO_DESCRIPTION).replace("\r", " ").replace(
        "\n", " "
    )
    published_at = to_datetime(published)
    return FeedItem(
        title=f"{raw_title} | {source.title}",
        description=_strip_html(description) or NO_DESCRIPTION,
        link=entry.get("link") or "",
        published=published_at,
        id=make_item_id(raw_title, source.url, published_at),
        feed_url=source.url,
    )


def _is_well_formed(parsed: feedparser.FeedParserDict) -> bool:
    """Reject documents feedparser only recovered with its loose parser.

    Encoding overrides and similar bozo warnings are harmless; XML syntax
    errors mean the body was truncated or broken.
    """
    if not parsed.get("bozo"):
        return True
    return not isinstance(parsed.get("bozo_exception"), xml.sax.SAXException)


def _decode_rss(
    parsed: feedparser.FeedParserDict, source: FeedSource
) -> Optional[DecodedFeed]:
    if not _is_well_formed(parsed):
        return None
    if not parsed.get("version", "").startswith("rss"):
        return None

    items = [
        _build_item(
            entry,
            source,
            entry.get("summary"),
            entry.get("published_parsed"),
        )
        for entry in parsed.entries
    ]
    return DecodedFeed("rss", parsed.feed.get("title", ""), items)


def _atom_description(entry) -> Optional[str]:
    content = entry.get("content")
    if content:
        try:
            value = content[0].get("value")
        except (TypeError, KeyError, IndexError, AttributeError):
            value = None
        if value:
            return value
    return entry.get("summary")


def _decode_atom(
    parsed: feedparser.FeedParserDict, source: FeedSource
) -> Optional[DecodedFeed]:
    if not _is_well_formed(parsed):
        return None
    if not parsed.get("version", "").startswith("atom"):
        return None

    items = [
        _build_item(
            entry,
            source,
            _atom_description(entry),
            entry.get("published_parsed") or entry.get("updated_parsed"),
        )
        for entry in parsed.entries
    ]
    return DecodedFeed("atom", parsed.feed.get("title", ""), items)


# Tried in order; the first decoder that accepts the document wins.
DECODERS: Sequence[Tuple[str, Decoder]] = (
    ("rss", _decode_rss),
    ("atom", _decode_atom),
)


def decode_feed(
    content: bytes,
    source: FeedSource,
    decoders: Sequence[Tuple[str, Decoder]] = DECODERS,
) -> Optional[DecodedFeed]:
    """Decode a response body, returning ``None`` if no decoder accepts it."""
    parsed = feedparser.parse(content)
    for name, decoder in decoders:
        decoded = decoder(parsed, source)
        if decoded is not None:
            logger.debug(
                "Decoded %s as %s with %d entries", source.url, name, len(decoded.items)
            )
            return decoded
        logger.debug("Decoder %s rejected %s", name, source.url)
    return None


def fetch_feed(
    source: FeedSource,
    session=None,
    timeout: float = DEFAULT_TIMEOUT_SECS,
) -> FetchedFeed:
    """Fetch and decode a single source.

    Raises:
        TransportError: connection, timeout or body-read failure.
        ProtocolStatusError: the server answered with a non-2xx status.
        ParseFailure: the body is neither RSS nor Atom.
    """
    http = session or requests
    logger.debug("Fetching feed '%s' (%s)", source.title, source.url)
    try:
        response = http.get(source.url, timeout=timeout, stream=True)
    except requests.RequestException as exc:
        raise TransportError(str(exc)) from exc
    except ValueError as exc:
        # Invalid request parameters, e.g. a non-positive timeout.
        raise TransportError(str(exc)) from exc

    try:
        response_time_ms = round(response.elapsed.total_seconds() * 1000)
        if not 200 <= response.status_code < 300:
            raise ProtocolStatusError(
                response.status_code, response.reason or "", response_time_ms
            )
        try:
            content = response.content
        except requests.RequestException as exc:
            raise TransportError(f"Read error: {exc}", response_time_ms) from exc
    finally:
        response.close()

    decoded = decode_feed(content, source)
    if decoded is None:
        raise ParseFailure("Failed to parse feed", response_time_ms)

    logger.info(
        "Collected %d entries from feed '%s' in %dms",
        len(decoded.items),
        source.url,
        response_time_ms,
    )
    return FetchedFeed(feed=decoded, response_time_ms=response_time_ms)


def is_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_and_get_feed_title(
    url: str, session=None, timeout: float = DEFAULT_TIMEOUT_SECS
) -> Optional[str]:
    """Return the feed's title when ``url`` serves a valid feed, else ``None``.

    An empty channel title falls back to the URL itself.
    """
    if not is_http_url(url):
        logger.debug("Rejecting non-http(s) feed URL: %s", url)
        return None

    try:
        fetched = fetch_feed(FeedSource(url=url, title=url), session, timeout)
    except FeedError as exc:
        logger.warning("Feed validation failed for %s: %s", url, exc)
        return None

    return fetched.feed.title.strip() or url
