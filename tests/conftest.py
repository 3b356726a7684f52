"""Shared fixtures and fakes for rss_keeper tests."""

from datetime import timedelta

import pytest

from rss_keeper.config import AppConfig, AppPaths


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <item>
      <title>First Article</title>
      <link>https://example.com/article-1</link>
      <guid>article-1</guid>
      <description>&lt;p&gt;Description of the &lt;b&gt;first&lt;/b&gt; article&lt;/p&gt;</description>
      <pubDate>Fri, 13 Feb 2026 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <guid>article-2</guid>
      <description>Description of the second article</description>
      <pubDate>Fri, 13 Feb 2026 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <id>urn:uuid:feed</id>
  <updated>2026-02-13T10:00:00Z</updated>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <summary>Summary of entry 1</summary>
    <updated>2026-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_NOT_A_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<html>
  <body>This is not a feed</body>
</html>"""


def rss_document(title, entries):
    """Build an RSS 2.0 document from ``(title, pubDate or None)`` pairs."""
    items = []
    for index, (entry_title, pub_date) in enumerate(entries):
        date_line = f"<pubDate>{pub_date}</pubDate>" if pub_date else ""
        items.append(
            f"<item><title>{entry_title}</title>"
            f"<link>https://example.com/{index}</link>"
            f"<description>Body {index}</description>{date_line}</item>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://example.com</link>"
        f"<description>d</description>{''.join(items)}</channel></rss>"
    ).encode("utf-8")


class FakeResponse:
    def __init__(
        self,
        content=b"",
        status_code=200,
        reason="OK",
        elapsed_ms=100,
        read_error=None,
    ):
        self._content = content
        self.status_code = status_code
        self.reason = reason
        self.elapsed = timedelta(milliseconds=elapsed_ms)
        self._read_error = read_error
        self.closed = False

    @property
    def content(self):
        if self._read_error is not None:
            raise self._read_error
        return self._content

    def close(self):
        self.closed = True


class FakeSession:
    """Serves canned responses (or raises canned exceptions) per URL."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, timeout=None, stream=False):
        self.calls.append((url, timeout))
        outcome = self.routes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSink:
    def __init__(self):
        self.sent = []

    def send(self, notification):
        self.sent.append(notification)


@pytest.fixture
def sample_rss_xml():
    return SAMPLE_RSS_XML.encode("utf-8")


@pytest.fixture
def sample_atom_xml():
    return SAMPLE_ATOM_XML.encode("utf-8")


@pytest.fixture
def sample_not_a_feed_xml():
    return SAMPLE_NOT_A_FEED_XML.encode("utf-8")


@pytest.fixture
def app_paths(tmp_path):
    return AppPaths(
        config_file=tmp_path / "config.json",
        state_file=tmp_path / "feeds.json",
        cache_dir=tmp_path / "feed_cache",
    )


@pytest.fixture
def app_config():
    return AppConfig(max_workers=1)
