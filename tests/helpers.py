from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from kalendarus.errors import BackendError, MessengerError, NotFoundError
from kalendarus.models import AppConfig, FeedEvent

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_config(**overrides: Any) -> AppConfig:
    data: dict[str, Any] = {
        "calendar_url": "https://calendar.example.com/team.ics",
        "timezone": "UTC",
        "time_format": "%Y-%m-%d %H:%M",
        "notify_template": "{summary} at {start} ({location}) {description}",
        "notification": {
            "30m": {"before_start": "30m"},
            "5m": {"before_start": "5m"},
        },
    }
    data.update(overrides)
    return AppConfig.from_dict(data)


def make_feed_event(
    uid: str = "E1",
    *,
    summary: str = "Standup",
    status: str = "CONFIRMED",
    start: datetime | None = NOW + timedelta(minutes=30),
    modified: datetime | None = NOW - timedelta(days=1),
    **kwargs: Any,
) -> FeedEvent:
    end = kwargs.pop("end", start + timedelta(hours=1) if start else None)
    return FeedEvent(
        uid=uid,
        summary=summary,
        status=status,
        start=start,
        end=end,
        last_modified=modified,
        location=kwargs.pop("location", "Room 1"),
        description=kwargs.pop("description", "Daily sync"),
    )


class RecordingMessenger:
    name = "recording"
    enabled = True

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[str] = []

    def send(self, message: str) -> None:
        self.messages.append(message)
        if self.fail:
            raise MessengerError("channel down")


class MemoryBackend:
    name = "memory"
    enabled = True

    def __init__(self) -> None:
        self.blobs: dict[str, Any] = {}
        self.save_calls = 0
        self.fail_saves = False

    def load(self, key: str) -> Any:
        if key not in self.blobs:
            raise NotFoundError(key)
        return self.blobs[key]

    def save(self, key: str, value: Any) -> None:
        self.save_calls += 1
        if self.fail_saves:
            raise BackendError("disk full")
        self.blobs[key] = value
