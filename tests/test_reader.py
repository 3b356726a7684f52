import json
from datetime import datetime, timedelta, timezone

from conftest import FakeResponse, FakeSession, RecordingSink, rss_document
from rss_keeper.config import AppConfig, AppPaths
from rss_keeper.identity import make_item_id
from rss_keeper.models import FeedItem, FeedSource
from rss_keeper.reader import FeedReader, ImportResult
from rss_keeper.state import CORRUPTED_STATE_WARNING

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
URL = "https://example.com/rss"


def _reader(app_paths, session=None, sink=None, **config):
    config.setdefault("max_workers", 1)
    return FeedReader(
        AppConfig(**config),
        app_paths,
        session=session or FakeSession(),
        sink=sink or RecordingSink(),
        clock=lambda: NOW,
    )


def _item(item_id, feed_url=URL, description=""):
    return FeedItem(
        title=f"{item_id} | Src",
        description=description,
        link="",
        published=None,
        id=item_id,
        feed_url=feed_url,
    )


def test_refresh_notifies_only_unseen_items(app_paths):
    session = FakeSession(
        {URL: FakeResponse(rss_document("Src", [("A", None), ("B", None), ("C", None)]))}
    )
    sink = RecordingSink()
    reader = _reader(app_paths, session, sink, notifications_enabled=True)
    reader.state.feeds.append(FeedSource(url=URL, title="Src"))
    reader.seen_items = {make_item_id("A", URL, None), make_item_id("B", URL, None)}

    reader.refresh()

    assert len(sink.sent) == 1
    notification = sink.sent[0]
    assert notification.summary == "1 new article"
    assert [item.title for item in notification.items] == ["C | Src"]
    assert make_item_id("C", URL, None) in reader.seen_items
    assert len(reader.current_items) == 3
    assert reader.last_refresh == NOW


def test_refresh_without_notifications_enabled_stays_quiet(app_paths):
    session = FakeSession({URL: FakeResponse(rss_document("Src", [("A", None)]))})
    sink = RecordingSink()
    reader = _reader(app_paths, session, sink)
    reader.state.feeds.append(FeedSource(url=URL, title="Src"))

    reader.refresh()

    assert sink.sent == []
    assert reader.seen_items == {make_item_id("A", URL, None)}


def test_start_seeds_seen_items_from_cache(app_paths):
    app_paths.state_file.write_text(
        json.dumps(
            {
                "feeds": [{"url": URL, "title": "Src", "category": None}],
                "read_items": [],
                "favorites": [],
            }
        ),
        encoding="utf-8",
    )
    sink = RecordingSink()
    reader = _reader(app_paths, sink=sink, notifications_enabled=True)
    reader.cache.put(URL, [_item("cached")])

    reader.start()

    assert sink.sent == []
    assert reader.seen_items == {"cached"}
    assert [item.id for item in reader.current_items] == ["cached"]
    assert reader.session.calls == []


def test_start_reports_corrupted_state(app_paths):
    app_paths.state_file.write_text("{oops", encoding="utf-8")
    reader = _reader(app_paths)

    reader.start()

    assert reader.pop_warnings() == [CORRUPTED_STATE_WARNING]
    assert reader.pop_warnings() == []
    assert reader.feeds == []


def test_add_feed_validates_and_persists(app_paths, sample_rss_xml):
    session = FakeSession({URL: FakeResponse(sample_rss_xml)})
    reader = _reader(app_paths, session)

    assert reader.add_feed(f"  {URL} ", category=" News ")

    assert reader.feeds == [FeedSource(url=URL, title="Test Feed", category="News")]
    saved = json.loads(app_paths.state_file.read_text(encoding="utf-8"))
    assert saved["feeds"] == [{"url": URL, "title": "Test Feed", "category": "News"}]


def test_add_feed_rejects_duplicates_and_invalid_urls(app_paths):
    bad = "https://example.com/404"
    session = FakeSession({bad: FakeResponse(status_code=404, reason="Not Found")})
    reader = _reader(app_paths, session)
    reader.state.feeds.append(FeedSource(url=URL, title="Src"))

    assert not reader.add_feed(URL)
    assert not reader.add_feed(bad)
    assert reader.pop_warnings() == [
        f"Feed already subscribed: {URL}",
        f"Invalid RSS feed URL: {bad}",
    ]
    assert len(reader.feeds) == 1


def test_import_feeds_counts_outcomes(app_paths, sample_rss_xml):
    new_url = "https://example.com/new"
    session = FakeSession({new_url: FakeResponse(sample_rss_xml)})
    reader = _reader(app_paths, session)
    reader.state.feeds.append(FeedSource(url=URL, title="Src"))

    result = reader.import_feeds(f"{URL}\n\n{new_url}\nnot-a-url\n")

    assert result == ImportResult(added=1, duplicate=1, invalid=1)
    assert result.message() == "Import: 1 added, 1 duplicate, 1 invalid"
    assert ImportResult().message() == "Import: nothing to import"
    assert [feed.url for feed in reader.feeds] == [URL, new_url]


def test_delete_feed_drops_only_its_items(app_paths):
    other = "https://other.example.com/rss"
    reader = _reader(app_paths)
    reader.state.feeds.extend(
        [FeedSource(url=URL, title="Src"), FeedSource(url=other, title="Other")]
    )
    reader.current_items = [_item("mine"), _item("theirs", feed_url=other)]

    assert reader.delete_feed(URL)
    assert not reader.delete_feed(URL)
    assert [item.id for item in reader.current_items] == ["theirs"]
    assert [feed.url for feed in reader.feeds] == [other]


def test_categories_group_uncategorized_first(app_paths):
    reader = _reader(app_paths)
    reader.state.feeds.extend(
        [
            FeedSource(url="https://1/rss", title="One", category="Tech"),
            FeedSource(url="https://2/rss", title="Two"),
            FeedSource(url="https://3/rss", title="Three", category="Art"),
        ]
    )

    assert reader.set_category("https://2/rss", "Art")
    assert reader.set_category("https://1/rss", "  ")
    assert not reader.set_category("https://missing/rss", "X")

    assert reader.categories() == ["Art"]
    grouped = reader.feeds_by_category()
    assert [(name, [f.title for f in feeds]) for name, feeds in grouped] == [
        (None, ["One"]),
        ("Art", ["Two", "Three"]),
    ]


def test_toggle_read_and_favorite_persist(app_paths):
    reader = _reader(app_paths)

    assert reader.toggle_read("x") is True
    assert reader.toggle_favorite("x") is True
    assert reader.toggle_read("x") is False

    saved = json.loads(app_paths.state_file.read_text(encoding="utf-8"))
    assert saved["read_items"] == []
    assert saved["favorites"] == ["x"]


def test_write_failure_keeps_in_memory_change(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    paths = AppPaths(
        config_file=tmp_path / "config.json",
        state_file=blocker / "feeds.json",
        cache_dir=tmp_path / "cache",
    )
    reader = _reader(paths)

    assert reader.toggle_read("x") is True

    assert "x" in reader.state.read_items
    warnings = reader.pop_warnings()
    assert len(warnings) == 1
    assert warnings[0].startswith("Failed to save feeds:")


def test_mark_all_read_and_counts(app_paths):
    reader = _reader(app_paths)
    items = [_item("a"), _item("b")]
    reader.cache.put(URL, items)
    reader.current_items = items

    assert reader.count_unread(URL) == 2
    assert reader.mark_read("a")
    assert not reader.mark_read("a")
    assert reader.mark_all_read() == 1
    assert reader.count_unread(URL) == 0
    assert reader.count_total(URL) == 2


def test_visible_items_filters_by_query_and_read_state(app_paths):
    reader = _reader(app_paths)
    reader.current_items = [
        _item("python", description="snakes"),
        _item("rust", description="crabs"),
    ]
    reader.state.read_items.add("rust")

    assert [i.id for i in reader.visible_items("CRAB")] == ["rust"]
    assert [i.id for i in reader.visible_items(unread_only=True)] == ["python"]
    reader.toggle_favorite("python")
    assert [i.id for i in reader.favorites()] == ["python"]


def test_auto_refresh_schedule(app_paths):
    reader = _reader(app_paths, auto_refresh_mins=10)
    assert not reader.refresh_due(NOW)

    reader.state.feeds.append(FeedSource(url=URL, title="Src"))
    assert reader.refresh_due(NOW)
    assert reader.time_until_next_refresh(NOW) == timedelta(0)

    reader.last_refresh = NOW
    assert not reader.refresh_due(NOW + timedelta(minutes=9))
    assert reader.refresh_due(NOW + timedelta(minutes=10))
    assert reader.time_until_next_refresh(NOW + timedelta(minutes=4)) == timedelta(
        minutes=6
    )


def test_auto_refresh_disabled_when_zero(app_paths):
    reader = _reader(app_paths)
    reader.state.feeds.append(FeedSource(url=URL, title="Src"))

    assert not reader.refresh_due(NOW)
    assert reader.time_until_next_refresh(NOW) is None


def test_mark_all_read_skips_write_when_nothing_changes(app_paths):
    reader = _reader(app_paths)
    reader.current_items = [_item("a")]
    reader.state.read_items.add("a")

    assert reader.mark_all_read() == 0
    assert not app_paths.state_file.exists()

    reader.current_items.append(_item("b"))
    assert reader.mark_all_read() == 1
    saved = json.loads(app_paths.state_file.read_text(encoding="utf-8"))
    assert saved["read_items"] == ["a", "b"]
