from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from kalendarus.backends import Backend
from kalendarus.calendar_feed import CalendarFetcher
from kalendarus.diff_engine import apply_feed_events
from kalendarus.errors import KalendarusError
from kalendarus.event_cache import EventCache
from kalendarus.messengers import Messenger
from kalendarus.models import AppConfig, NotifyResult, PullResult
from kalendarus.notifier import NotificationScheduler
from kalendarus.scheduler import IntervalLoop
from kalendarus.state import StatePersistence

logger = logging.getLogger(__name__)

ERROR_QUEUE_SIZE = 10


def _elapsed_ms(started_at: datetime) -> int:
    return int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)


class Processor:
    """Owns the event cache and runs the pull and notify loops over it.

    Every access to the cache and its dirty flag goes through ``self.lock``.
    Loop failures are pushed to ``self.errors`` for the coordinator.
    """

    def __init__(
        self,
        config: AppConfig,
        messenger: Messenger,
        backend: Backend,
        fetcher: Optional[CalendarFetcher] = None,
        errors: Optional["queue.Queue[Exception]"] = None,
    ) -> None:
        self.config = config
        self.tz = config.tzinfo()
        self.lock = threading.RLock()
        self.cache = EventCache()
        self.persistence = StatePersistence(self.cache, backend)
        self.fetcher = fetcher or CalendarFetcher(config.calendar_url, config.http_timeout_seconds)
        self.notifier = NotificationScheduler(config, messenger, on_error=self.report)
        self.errors: "queue.Queue[Exception]" = errors or queue.Queue(maxsize=ERROR_QUEUE_SIZE)
        self.stop_event = threading.Event()
        self.pull_loop = IntervalLoop(
            "kalendarus-pull",
            self.pull_once,
            config.pull_interval,
            stop_event=self.stop_event,
            on_error=self.report,
        )
        self.notify_loop = IntervalLoop(
            "kalendarus-notify",
            self.notify_once,
            config.notify_interval,
            stop_event=self.stop_event,
            on_error=self.report,
        )
        self.last_pull: PullResult | None = None
        self.last_notify: NotifyResult | None = None

    def report(self, exc: Exception) -> None:
        try:
            self.errors.put_nowait(exc)
        except queue.Full:
            logger.error("Error queue is full, dropping: %s", exc)

    def load_state(self) -> bool:
        with self.lock:
            return self.persistence.load()

    def save_state(self) -> bool:
        with self.lock:
            return self.persistence.save()

    def _save_reporting(self) -> None:
        try:
            self.save_state()
        except KalendarusError as exc:
            self.report(exc)

    def pull_once(self, trigger: str = "manual", now: datetime | None = None) -> PullResult:
        started_at = datetime.now(timezone.utc)
        logger.debug("Pulling calendar (%s)", trigger)
        try:
            events = self.fetcher.fetch()
        except KalendarusError as exc:
            self.report(exc)
            self.last_pull = PullResult(status="error", message=str(exc), duration_ms=_elapsed_ms(started_at))
            return self.last_pull

        now = now or datetime.now(timezone.utc)
        pruned: list[str] = []
        with self.lock:
            diff = apply_feed_events(self.cache, events, self.tz, now)
            if self.config.cache_retention_hours > 0:
                pruned = self.cache.prune(now - timedelta(hours=self.config.cache_retention_hours))
        self._save_reporting()

        self.last_pull = PullResult(
            status="success",
            message=f"{diff.added} added, {diff.updated} updated, {len(pruned)} pruned",
            duration_ms=_elapsed_ms(started_at),
            fetched=len(events),
            added=diff.added,
            updated=diff.updated,
            pruned=len(pruned),
        )
        return self.last_pull

    def notify_once(self, trigger: str = "manual", now: datetime | None = None) -> NotifyResult:
        logger.debug("Checking notifications (%s)", trigger)
        self.last_notify = self.notifier.run_once(self.cache, now=now, lock=self.lock)
        self._save_reporting()
        return self.last_notify

    def start(self) -> None:
        self.load_state()
        self.pull_loop.start()
        self.notify_loop.start()

    def stop(self, timeout: float | None = None) -> None:
        self.stop_event.set()
        self.pull_loop.stop(timeout=timeout)
        self.notify_loop.stop(timeout=timeout)

    def trigger_pull(self) -> None:
        self.pull_loop.trigger_manual()

    def trigger_notify(self) -> None:
        self.notify_loop.trigger_manual()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self.lock:
            return self.cache.to_dict()

    def status(self) -> dict[str, Any]:
        with self.lock:
            cached = len(self.cache)
            dirty = self.cache.dirty
            last_saved_at = self.persistence.last_saved_at
        return {
            "cached_events": cached,
            "dirty": dirty,
            "last_saved_at": last_saved_at.isoformat() if last_saved_at else None,
            "pull_running": self.pull_loop.running,
            "notify_running": self.notify_loop.running,
            "last_pull": self.last_pull.to_dict() if self.last_pull else None,
            "last_notify": self.last_notify.to_dict() if self.last_notify else None,
        }
