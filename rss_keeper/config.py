"""Configuration loading for rss_keeper."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

APP_DIR_NAME = "rss_keeper"

DEFAULT_HTTP_TIMEOUT_SECS = 30
DEFAULT_CACHE_DURATION_MINS = 60
DEFAULT_NOTIFICATIONS_ENABLED = False
DEFAULT_AUTO_REFRESH_MINS = 0
DEFAULT_MAX_WORKERS = 4


@dataclass
class EmailConfig:
    to_addr: Optional[str] = None
    from_addr: Optional[str] = None
    subject: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    http_timeout_secs: int = DEFAULT_HTTP_TIMEOUT_SECS
    cache_duration_mins: int = DEFAULT_CACHE_DURATION_MINS
    notifications_enabled: bool = DEFAULT_NOTIFICATIONS_ENABLED
    auto_refresh_mins: int = DEFAULT_AUTO_REFRESH_MINS
    max_workers: int = DEFAULT_MAX_WORKERS
    email: EmailConfig = field(default_factory=EmailConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


@dataclass
class AppPaths:
    """Locations of the config file, the state file and the cache directory."""

    config_file: Path
    state_file: Path
    cache_dir: Path

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppPaths":
        env = os.environ if environ is None else environ
        home = env.get("RSS_KEEPER_HOME")
        if home:
            root = Path(home).expanduser()
            return cls(
                config_file=root / "config.json",
                state_file=root / "feeds.json",
                cache_dir=root / "feed_cache",
            )

        user_home = Path(env.get("HOME") or Path.home())
        config_root = Path(env.get("XDG_CONFIG_HOME") or user_home / ".config")
        cache_root = Path(env.get("XDG_CACHE_HOME") or user_home / ".cache")
        return cls(
            config_file=config_root / APP_DIR_NAME / "config.json",
            state_file=config_root / APP_DIR_NAME / "feeds.json",
            cache_dir=cache_root / APP_DIR_NAME / "feed_cache",
        )


def _read_int(payload: Mapping[str, Any], key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{key}' must be a non-negative integer, got {value!r}")
    return value


def _read_bool(payload: Mapping[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value


def _read_optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string, got {value!r}")
    return value


def config_from_dict(payload: Mapping[str, Any]) -> AppConfig:
    """Build an ``AppConfig`` from decoded JSON, applying defaults.

    Raises:
        ValueError: if a recognised option has the wrong type.
    """
    if not isinstance(payload, Mapping):
        raise ValueError("Config must be a JSON object.")

    http_timeout_secs = _read_int(
        payload, "http_timeout_secs", DEFAULT_HTTP_TIMEOUT_SECS
    )
    if http_timeout_secs < 1:
        raise ValueError("'http_timeout_secs' must be at least 1")

    max_workers = _read_int(payload, "max_workers", DEFAULT_MAX_WORKERS)
    if max_workers < 1:
        raise ValueError("'max_workers' must be at least 1")

    email = EmailConfig()
    email_node = payload.get("email")
    if email_node is not None:
        if not isinstance(email_node, Mapping):
            raise ValueError("'email' must be an object")
        email.to_addr = _read_optional_str(email_node, "to")
        email.from_addr = _read_optional_str(email_node, "from")
        email.subject = _read_optional_str(email_node, "subject")

    logging_config = LoggingConfig()
    log_node = payload.get("logging")
    if log_node is not None:
        if not isinstance(log_node, Mapping):
            raise ValueError("'logging' must be an object")
        logging_config.level = _read_optional_str(log_node, "level") or "INFO"
        logging_config.file = _read_optional_str(log_node, "file")

    return AppConfig(
        http_timeout_secs=http_timeout_secs,
        cache_duration_mins=_read_int(
            payload, "cache_duration_mins", DEFAULT_CACHE_DURATION_MINS
        ),
        notifications_enabled=_read_bool(
            payload, "notifications_enabled", DEFAULT_NOTIFICATIONS_ENABLED
        ),
        auto_refresh_mins=_read_int(
            payload, "auto_refresh_mins", DEFAULT_AUTO_REFRESH_MINS
        ),
        max_workers=max_workers,
        email=email,
        logging=logging_config,
    )


def parse_app_config(path: str) -> AppConfig:
    """Load the JSON config file, falling back to defaults when unusable."""
    config_path = Path(path)
    if not config_path.exists():
        logger.info("No config file at %s; using defaults", config_path)
        return AppConfig()

    logger.info("Loading application configuration from %s", config_path)
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
        return config_from_dict(payload)
    except (OSError, ValueError) as exc:
        logger.warning(
            "Failed to parse config file %s: %s. Using defaults.", config_path, exc
        )
        return AppConfig()


def config_to_dict(config: AppConfig) -> Dict[str, Any]:
    data = dataclasses.asdict(config)
    email = data.pop("email")
    data["email"] = {
        "to": email["to_addr"],
        "from": email["from_addr"],
        "subject": email["subject"],
    }
    return data


def save_app_config(config: AppConfig, path: str) -> None:
    config_path = Path(path)
    if config_path.parent and not config_path.parent.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        json.dumps(config_to_dict(config), indent=2), encoding="utf-8"
    )
    logger.info("Saved configuration to %s", config_path)
