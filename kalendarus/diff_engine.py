from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable

from kalendarus.errors import NotFoundError
from kalendarus.event_cache import EventCache
from kalendarus.models import CachedEvent, FeedEvent, to_local

logger = logging.getLogger(__name__)

CONFIRMED = "CONFIRMED"


@dataclass
class DiffResult:
    added: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)


def is_active_event(event: FeedEvent, tz: tzinfo, now: datetime | None = None) -> bool:
    if not event.summary or event.status != CONFIRMED or event.start is None:
        return False
    current = to_local(now or datetime.now(timezone.utc), tz)
    return to_local(event.start, tz) > current


def build_cached_event(event: FeedEvent, tz: tzinfo) -> CachedEvent:
    return CachedEvent(
        summary=event.summary,
        location=event.location,
        description=event.description,
        start_time=event.start,
        start_time_local=to_local(event.start, tz),
        end_time=event.end,
        end_time_local=to_local(event.end, tz),
        modified_time=event.last_modified,
        modified_time_local=to_local(event.last_modified, tz),
        notificators={},
    )


def _event_changed(cache: EventCache, event: FeedEvent) -> bool:
    if event.last_modified is None:
        return False
    try:
        return cache.is_changed(event.uid, event.last_modified)
    except NotFoundError:
        return False


def apply_feed_events(
    cache: EventCache,
    events: Iterable[FeedEvent],
    tz: tzinfo,
    now: datetime | None = None,
) -> DiffResult:
    """Merge freshly fetched events into ``cache``.

    Replaced records keep the delivered flags of the record they replace, so a
    rescheduled or edited event is not announced again for a threshold that
    already fired.
    """
    now = now or datetime.now(timezone.utc)
    result = DiffResult()
    for event in events:
        if not is_active_event(event, tz, now):
            result.skipped += 1
            continue
        if not cache.has(event.uid):
            cache.put(event.uid, build_cached_event(event, tz))
            result.added += 1
            logger.info("ADDED [%s] %s", to_local(event.start, tz), event.summary)
            continue
        if not _event_changed(cache, event):
            continue
        previous = cache.get(event.uid)
        replacement = build_cached_event(event, tz)
        if previous is not None:
            replacement.notificators = dict(previous.notificators)
        cache.put(event.uid, replacement)
        result.updated += 1
        logger.info("UPDATED [%s] %s", to_local(event.start, tz), event.summary)
    return result
