"""Command-line interface for the rss_keeper application."""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import List, Optional

from .config import AppPaths, parse_app_config
from .reader import FeedReader

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Keep a local, cached copy of your RSS and Atom subscriptions."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the JSON configuration file. Defaults to the user config dir.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    refresh = commands.add_parser("refresh", help="Refresh every subscribed feed.")
    refresh.add_argument(
        "--force", action="store_true", help="Ignore the cache and fetch every feed."
    )

    listing = commands.add_parser("list", help="Print the current items.")
    listing.add_argument("--unread-only", action="store_true")
    listing.add_argument("--favorites", action="store_true")
    listing.add_argument("--search", default="", help="Filter on title or description.")
    listing.add_argument("--limit", type=int, default=None)

    add = commands.add_parser("add", help="Subscribe to a feed.")
    add.add_argument("url")
    add.add_argument("--category", default=None)

    remove = commands.add_parser("remove", help="Unsubscribe from a feed.")
    remove.add_argument("url")

    category = commands.add_parser(
        "category", help="Set or clear (when NAME is omitted) a feed's category."
    )
    category.add_argument("url")
    category.add_argument("name", nargs="?", default=None)

    import_cmd = commands.add_parser(
        "import", help="Subscribe to every URL listed in FILE, one per line."
    )
    import_cmd.add_argument("file")

    read = commands.add_parser("read", help="Toggle the read flag of an item.")
    read.add_argument("item_id")

    favorite = commands.add_parser("favorite", help="Toggle the favorite flag of an item.")
    favorite.add_argument("item_id")

    commands.add_parser("health", help="Show the status of every feed.")
    commands.add_parser(
        "watch", help="Refresh repeatedly every auto_refresh_mins minutes."
    )

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )

    logging.getLogger("urllib3").setLevel(max(log_level, logging.WARNING))


def _format_item(reader: FeedReader, item) -> str:
    flags = ("*" if reader.is_favorite(item) else " ") + (
        " " if reader.is_read(item) else "N"
    )
    published = item.published.strftime("%Y-%m-%d %H:%M") if item.published else "-"
    return f"{flags} {published:16} {item.title}\n    {item.link}\n    id: {item.id}"


def _print_warnings(reader: FeedReader) -> None:
    for warning in reader.pop_warnings():
        print(f"warning: {warning}")


def _run_list(reader: FeedReader, args: argparse.Namespace) -> int:
    items = reader.visible_items(args.search, args.unread_only)
    if args.favorites:
        items = [item for item in items if reader.is_favorite(item)]
    if args.limit is not None:
        items = items[: args.limit]
    for item in items:
        print(_format_item(reader, item))
    return 0


def _run_health(reader: FeedReader) -> int:
    for title, feeds in reader.feeds_by_category():
        print(f"[{title or 'Uncategorized'}]")
        for feed in feeds:
            health = reader.health(feed.url)
            print(
                f"  {health.status_indicator()} {feed.title} ({feed.url}): "
                f"{health.status_description()}, "
                f"{reader.count_unread(feed.url)}/{reader.count_total(feed.url)} unread"
            )
    return 0


def _run_watch(reader: FeedReader) -> int:
    if reader.config.auto_refresh_mins == 0:
        logger.error("auto_refresh_mins is 0; set it in the config to use watch.")
        return 1
    try:
        while True:
            wait = reader.time_until_next_refresh()
            if wait:
                time.sleep(wait.total_seconds())
            if reader.refresh_due():
                report = reader.refresh()
                print(
                    f"Refreshed {len(reader.feeds)} feeds: {len(report.items)} items, "
                    f"{len(report.failed)} failed"
                )
                _print_warnings(reader)
    except KeyboardInterrupt:
        logger.info("Stopping watch loop.")
    return 0


def run_command(reader: FeedReader, args: argparse.Namespace) -> int:
    command = args.command
    if command == "refresh":
        reader.start(refresh=False)
        report = reader.refresh(force=args.force)
        print(
            f"{len(report.items)} items from {len(reader.feeds)} feeds "
            f"({len(report.cached)} cached, {len(report.fetched)} fetched, "
            f"{len(report.failed)} failed)"
        )
        for url, error in report.failed.items():
            print(f"  failed: {url}: {error}")
        return 0

    if command == "list":
        reader.start(refresh=True)
        return _run_list(reader, args)

    if command == "health":
        reader.start(refresh=True)
        return _run_health(reader)

    if command == "watch":
        reader.start(refresh=True)
        return _run_watch(reader)

    reader.load()
    if command == "add":
        if not reader.add_feed(args.url, args.category):
            return 1
        print(f"Added {reader.find_feed(args.url.strip()).title}")
        return 0

    if command == "remove":
        if not reader.delete_feed(args.url):
            logger.error("Not subscribed to %s", args.url)
            return 1
        print(f"Removed {args.url}")
        return 0

    if command == "category":
        if not reader.set_category(args.url, args.name):
            logger.error("Not subscribed to %s", args.url)
            return 1
        return 0

    if command == "import":
        text = Path(args.file).read_text(encoding="utf-8")
        result = reader.import_feeds(text)
        print(result.message())
        return 0

    if command == "read":
        now_read = reader.toggle_read(args.item_id)
        print("read" if now_read else "unread")
        return 0

    if command == "favorite":
        now_favorite = reader.toggle_favorite(args.item_id)
        print("favorite" if now_favorite else "not favorite")
        return 0

    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        paths = AppPaths.from_env()
        config_path = args.config or str(paths.config_file)
        app_config = parse_app_config(config_path)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file

        configure_logging(log_level, log_file)

        reader = FeedReader(app_config, paths)
        exit_code = run_command(reader, args)
        _print_warnings(reader)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    return exit_code
