from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from kalendarus.errors import ConfigError


DEFAULT_TIMEZONE = "Asia/Yekaterinburg"
DEFAULT_TIME_FORMAT = "%d.%m.%Y %H:%M"
DEFAULT_NOTIFY_TEMPLATE = "{summary}\n{start}\n{location}\n{description}"
DEFAULT_TELEGRAM_URL = "https://api.telegram.org/bot"
DEFAULT_DATA_DIR = "/etc/kalendarus/data"
DEFAULT_SQLITE_PATH = "/var/lib/kalendarus/state.db"
TELEGRAM_PARSE_MODES = {"", "Markdown", "HTML"}
LOG_LEVELS = {"debug", "info", "warning", "warn", "error", "critical"}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _ensure_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_datetime(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO datetime string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return _ensure_tz(parsed)


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_tz(value).isoformat()


def date_to_datetime(value: datetime | date | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _ensure_tz(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def to_local(value: datetime | None, tz: tzinfo) -> datetime | None:
    if value is None:
        return None
    return _ensure_tz(value).astimezone(tz)


def parse_duration(raw: str) -> timedelta:
    """Parse a duration such as ``"1h30m"``, ``"10m"`` or ``"1.5h"``.

    A bare ``"0"`` is accepted; anything else needs a unit on every number.
    """
    text = str(raw or "").strip()
    if not text:
        raise ValueError("empty duration")
    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += _DURATION_UNITS[match.group(2)] * float(match.group(1))
        position = match.end()
    if position != len(text) or position == 0:
        raise ValueError(f"invalid duration {raw!r}")
    return timedelta(seconds=total * sign)


def format_duration(value: timedelta) -> str:
    seconds = int(value.total_seconds())
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs:
        parts.append(f"{secs}s")
    return sign + "".join(parts)


@dataclass(frozen=True)
class Threshold:
    id: str
    before_start: timedelta

    def __str__(self) -> str:
        return format_duration(self.before_start)


@dataclass
class NotificationConfig:
    before_start: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str | None) -> "NotificationConfig":
        if isinstance(data, str):
            return cls(before_start=data.strip())
        data = data or {}
        return cls(before_start=str(data.get("before_start", "")).strip())


@dataclass
class TelegramConfig:
    enabled: bool = False
    url: str = DEFAULT_TELEGRAM_URL
    token: str = ""
    chat_id: str = ""
    parse_mode: str = ""
    disable_web_page_preview: bool = False
    disable_notification: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TelegramConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            url=str(data.get("url", DEFAULT_TELEGRAM_URL)).strip(),
            token=str(data.get("token", "")).strip(),
            chat_id=str(data.get("chat_id", data.get("chat-id", ""))).strip(),
            parse_mode=str(data.get("parse_mode", data.get("parse-mode", "")) or "").strip(),
            disable_web_page_preview=bool(
                data.get("disable_web_page_preview", data.get("disable-web-page-preview", False))
            ),
            disable_notification=bool(
                data.get("disable_notification", data.get("disable-notification", False))
            ),
        )

    def validate(self) -> None:
        if self.enabled:
            if not self.url:
                raise ConfigError("telegram: must specify url")
            if not self.token:
                raise ConfigError("telegram: must specify token")
        if self.url:
            parsed = urlparse(self.url)
            if not parsed.scheme or not parsed.netloc:
                raise ConfigError(f"telegram: invalid url {self.url!r}")
        if self.parse_mode not in TELEGRAM_PARSE_MODES:
            raise ConfigError(
                f"telegram: parse mode {self.parse_mode} is not valid, please use 'Markdown' or 'HTML'"
            )


@dataclass
class PlainfileConfig:
    enabled: bool = False
    data_dir: str = DEFAULT_DATA_DIR

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "PlainfileConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            data_dir=str(data.get("data_dir", DEFAULT_DATA_DIR)).strip(),
        )

    def validate(self) -> None:
        if not self.enabled:
            return
        if not self.data_dir:
            raise ConfigError("plainfile: must specify data directory")
        if not Path(self.data_dir).is_dir():
            raise ConfigError(f"plainfile: data directory {self.data_dir} does not exist")


@dataclass
class SqliteConfig:
    enabled: bool = False
    path: str = DEFAULT_SQLITE_PATH

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SqliteConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            path=str(data.get("path", DEFAULT_SQLITE_PATH)).strip(),
        )

    def validate(self) -> None:
        if self.enabled and not self.path:
            raise ConfigError("sqlite: must specify database path")


@dataclass
class WebConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "WebConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            host=str(data.get("host", "127.0.0.1")).strip() or "127.0.0.1",
            port=int(data.get("port", 8080)),
        )


@dataclass
class AppConfig:
    pull_interval: int = 1800
    notify_interval: int = 600
    notify_template: str = DEFAULT_NOTIFY_TEMPLATE
    log_level: str = "info"
    calendar_url: str = ""
    timezone: str = DEFAULT_TIMEZONE
    time_format: str = DEFAULT_TIME_FORMAT
    http_timeout_seconds: int = 30
    cache_retention_hours: int = 168
    notifications: dict[str, NotificationConfig] = field(default_factory=dict)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    plainfile: PlainfileConfig = field(default_factory=PlainfileConfig)
    sqlite: SqliteConfig = field(default_factory=SqliteConfig)
    web: WebConfig = field(default_factory=WebConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "AppConfig":
        data = data or {}
        raw_notifications = data.get("notification", data.get("notifications", {}))
        notifications: dict[str, NotificationConfig] = {}
        if isinstance(raw_notifications, dict):
            for key, value in raw_notifications.items():
                threshold_id = str(key).strip()
                if not threshold_id:
                    continue
                notifications[threshold_id] = NotificationConfig.from_dict(value)
        return cls(
            pull_interval=max(1, int(data.get("pull_interval", 1800))),
            notify_interval=max(1, int(data.get("notify_interval", 600))),
            notify_template=str(data.get("notify_template", DEFAULT_NOTIFY_TEMPLATE) or DEFAULT_NOTIFY_TEMPLATE),
            log_level=str(data.get("log_level", "info") or "info").strip().lower(),
            calendar_url=str(data.get("calendar_url", "") or "").strip(),
            timezone=str(data.get("timezone", DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE).strip(),
            time_format=str(data.get("time_format", DEFAULT_TIME_FORMAT) or DEFAULT_TIME_FORMAT),
            http_timeout_seconds=max(1, int(data.get("http_timeout_seconds", 30))),
            cache_retention_hours=max(0, int(data.get("cache_retention_hours", 168))),
            notifications=notifications,
            telegram=TelegramConfig.from_dict(data.get("telegram")),
            plainfile=PlainfileConfig.from_dict(data.get("plainfile")),
            sqlite=SqliteConfig.from_dict(data.get("sqlite")),
            web=WebConfig.from_dict(data.get("web")),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["notification"] = payload.pop("notifications")
        return payload

    def tzinfo(self) -> tzinfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"unknown timezone {self.timezone!r}") from exc

    def thresholds(self) -> list[Threshold]:
        """Configured thresholds, smallest lead time first."""
        items: list[Threshold] = []
        for threshold_id, notification in self.notifications.items():
            try:
                before_start = parse_duration(notification.before_start)
            except ValueError as exc:
                raise ConfigError(f"notification {threshold_id}: {exc}") from exc
            items.append(Threshold(id=threshold_id, before_start=before_start))
        items.sort(key=lambda item: (item.before_start, item.id))
        return items

    def log_level_value(self) -> int:
        level = self.log_level.upper()
        if level == "WARN":
            level = "WARNING"
        return logging.getLevelName(level)

    def validate(self) -> None:
        if not self.calendar_url:
            raise ConfigError("calendar_url must be specified")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"unknown log level {self.log_level!r}")
        self.tzinfo()
        self.thresholds()
        sample = {"summary": "", "start": "", "location": "", "description": ""}
        try:
            self.notify_template.format(*sample.values(), **sample)
        except (IndexError, KeyError, ValueError) as exc:
            raise ConfigError(f"invalid notify_template: {exc!r}") from exc
        self.telegram.validate()
        self.plainfile.validate()
        self.sqlite.validate()


@dataclass
class FeedEvent:
    uid: str
    summary: str = ""
    location: str = ""
    description: str = ""
    status: str = ""
    start: datetime | None = None
    end: datetime | None = None
    last_modified: datetime | None = None


@dataclass
class CachedEvent:
    summary: str = ""
    location: str = ""
    description: str = ""
    start_time: datetime | None = None
    start_time_local: datetime | None = None
    end_time: datetime | None = None
    end_time_local: datetime | None = None
    modified_time: datetime | None = None
    modified_time_local: datetime | None = None
    notificators: dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "location": self.location,
            "description": self.description,
            "start_time": serialize_datetime(self.start_time),
            "start_time_local": serialize_datetime(self.start_time_local),
            "end_time": serialize_datetime(self.end_time),
            "end_time_local": serialize_datetime(self.end_time_local),
            "modified_time": serialize_datetime(self.modified_time),
            "modified_time_local": serialize_datetime(self.modified_time_local),
            "notificators": dict(self.notificators),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedEvent":
        raw_notificators = data.get("notificators") or {}
        return cls(
            summary=str(data.get("summary", "") or ""),
            location=str(data.get("location", "") or ""),
            description=str(data.get("description", "") or ""),
            start_time=parse_iso_datetime(data.get("start_time")),
            start_time_local=parse_iso_datetime(data.get("start_time_local")),
            end_time=parse_iso_datetime(data.get("end_time")),
            end_time_local=parse_iso_datetime(data.get("end_time_local")),
            modified_time=parse_iso_datetime(data.get("modified_time")),
            modified_time_local=parse_iso_datetime(data.get("modified_time_local")),
            notificators={str(key): bool(value) for key, value in dict(raw_notificators).items()},
        )


@dataclass
class PullResult:
    status: str
    message: str
    duration_ms: int
    fetched: int = 0
    added: int = 0
    updated: int = 0
    pruned: int = 0
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["run_at"] = serialize_datetime(self.run_at)
        return payload


@dataclass
class NotifyResult:
    status: str
    message: str
    duration_ms: int
    sent: int = 0
    failed: int = 0
    suppressed: int = 0
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["run_at"] = serialize_datetime(self.run_at)
        return payload
