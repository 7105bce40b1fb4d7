from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterator

from kalendarus.errors import BackendError, NotFoundError
from kalendarus.models import CachedEvent, serialize_datetime

logger = logging.getLogger(__name__)


class EventCache:
    """In-memory map of calendar event uid to its cached snapshot.

    The cache does no locking of its own; every caller goes through the
    processor lock. ``dirty`` is set by any mutation and cleared only after a
    successful persist.
    """

    def __init__(self) -> None:
        self.events: dict[str, CachedEvent] = {}
        self._dirty = False

    def __len__(self) -> int:
        return len(self.events)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def mark_clean(self) -> None:
        self._dirty = False

    def has(self, uid: str) -> bool:
        return uid in self.events

    def get(self, uid: str) -> CachedEvent | None:
        return self.events.get(uid)

    def put(self, uid: str, event: CachedEvent) -> None:
        self.events[uid] = event
        self._dirty = True

    def is_changed(self, uid: str, modified_time: datetime | None) -> bool:
        event = self.events.get(uid)
        if event is None:
            raise NotFoundError(f"event {uid} not found")
        return event.modified_time != modified_time

    def items(self) -> Iterator[tuple[str, CachedEvent]]:
        return iter(list(self.events.items()))

    def prune(self, before: datetime) -> list[str]:
        """Drop events that ended (or started, when no end is known) before ``before``."""
        removed: list[str] = []
        for uid, event in list(self.events.items()):
            reference = event.end_time or event.start_time
            if reference is None or reference >= before:
                continue
            del self.events[uid]
            removed.append(uid)
            logger.info("PRUNED [%s] %s (%s)", serialize_datetime(event.start_time_local), event.summary, uid)
        if removed:
            self._dirty = True
        return removed

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {uid: event.to_dict() for uid, event in self.events.items()}

    def replace_all(self, payload: dict[str, Any]) -> None:
        """Load a persisted map; entries that are not objects are ignored.

        Raises ``BackendError`` when an entry cannot be decoded, leaving the
        current events untouched.
        """
        events: dict[str, CachedEvent] = {}
        for uid, item in payload.items():
            if not isinstance(item, dict):
                logger.warning("Skipping malformed cached event %s", uid)
                continue
            try:
                events[str(uid)] = CachedEvent.from_dict(item)
            except (TypeError, ValueError) as exc:
                raise BackendError(f"cached event {uid} is malformed: {exc}") from exc
        self.events = events
        self._dirty = False
