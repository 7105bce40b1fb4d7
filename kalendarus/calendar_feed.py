from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

import requests
from icalendar import Calendar as ICalendar

from kalendarus.errors import FetchError
from kalendarus.models import FeedEvent, date_to_datetime

logger = logging.getLogger(__name__)


def _coerce_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return date_to_datetime(value)
    return None


def _decoded(component: Any, name: str) -> Any:
    if component.get(name) is None:
        return None
    try:
        return component.decoded(name)
    except (KeyError, ValueError):
        return None


def _text(component: Any, name: str) -> str:
    return str(component.get(name, "") or "").strip()


def parse_vevent(component: Any) -> FeedEvent:
    return FeedEvent(
        uid=_text(component, "UID"),
        summary=_text(component, "SUMMARY"),
        location=_text(component, "LOCATION"),
        description=_text(component, "DESCRIPTION"),
        status=_text(component, "STATUS").upper(),
        start=_coerce_datetime(_decoded(component, "DTSTART")),
        end=_coerce_datetime(_decoded(component, "DTEND")),
        last_modified=_coerce_datetime(_decoded(component, "LAST-MODIFIED")),
    )


def parse_calendar(raw_ical: bytes | str) -> list[FeedEvent]:
    try:
        calendar_obj = ICalendar.from_ical(raw_ical)
    except (IndexError, ValueError) as exc:
        raise FetchError(f"cannot parse calendar: {exc}") from exc
    events: list[FeedEvent] = []
    for component in calendar_obj.walk():
        if component.name != "VEVENT":
            continue
        event = parse_vevent(component)
        if not event.uid:
            logger.debug("Skipping VEVENT without UID: %s", event.summary)
            continue
        events.append(event)
    return events


class CalendarFetcher:
    def __init__(self, url: str, timeout_seconds: int = 30) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds

    def fetch(self) -> list[FeedEvent]:
        try:
            response = requests.get(self.url, timeout=self.timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(f"cannot fetch calendar {self.url}: {exc}") from exc
        return parse_calendar(response.content)
