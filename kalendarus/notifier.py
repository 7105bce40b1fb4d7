from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ContextManager

from kalendarus.errors import KalendarusError
from kalendarus.event_cache import EventCache
from kalendarus.messengers import Messenger
from kalendarus.models import AppConfig, CachedEvent, NotifyResult, Threshold, to_local

logger = logging.getLogger(__name__)


def render_message(template: str, time_format: str, event: CachedEvent) -> str:
    start = event.start_time_local.strftime(time_format) if event.start_time_local else ""
    values = {
        "summary": event.summary,
        "start": start,
        "location": event.location,
        "description": event.description,
    }
    try:
        return template.format(
            values["summary"], values["start"], values["location"], values["description"], **values
        )
    except (IndexError, KeyError, ValueError) as exc:
        raise KalendarusError(f"cannot render notify template: {exc}") from exc


@dataclass
class PendingMessage:
    uid: str
    threshold: Threshold
    event: CachedEvent
    text: str


class NotificationScheduler:
    """Walks the cache and fires one message per event when a lead time is crossed.

    Thresholds are checked smallest lead time first. When several of them are
    crossed for one event in the same pass, all are marked delivered but only
    the first produces a message. Nothing is sent on the first pass after
    start-up; already crossed thresholds are only marked.
    """

    def __init__(
        self,
        config: AppConfig,
        messenger: Messenger,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.messenger = messenger
        self.tz = config.tzinfo()
        self.thresholds = config.thresholds()
        self.template = config.notify_template
        self.time_format = config.time_format
        self.on_error = on_error
        self.first_start = True

    def _report(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)

    def collect(self, cache: EventCache, now: datetime) -> tuple[list[PendingMessage], int]:
        """Mark crossed thresholds delivered and return the messages to send."""
        # an empty pass keeps first_start so the first real events are still suppressed
        if len(cache) == 0:
            return [], 0
        current = to_local(now, self.tz)
        pending: list[PendingMessage] = []
        suppressed = 0
        for uid, event in cache.items():
            if event.start_time_local is None:
                continue
            diff = event.start_time_local - current
            notified = False
            for threshold in self.thresholds:
                if event.notificators.get(threshold.id) or diff > threshold.before_start:
                    continue
                if notified:
                    logger.debug(
                        "SKIP_NOTIFY [%s] %s LESS %s (%s)", event.start_time_local, event.summary, threshold, uid
                    )
                elif self.first_start:
                    suppressed += 1
                    logger.debug(
                        "SKIP_ON_START [%s] %s LESS %s (%s)", event.start_time_local, event.summary, threshold, uid
                    )
                else:
                    try:
                        text = render_message(self.template, self.time_format, event)
                    except KalendarusError as exc:
                        logger.error("Failed to render notification for %s (%s): %s", event.summary, uid, exc)
                        self._report(exc)
                    else:
                        pending.append(PendingMessage(uid=uid, threshold=threshold, event=event, text=text))
                notified = True
                event.notificators[threshold.id] = True
                cache.mark_dirty()
        self.first_start = False
        return pending, suppressed

    def deliver(self, pending: list[PendingMessage]) -> tuple[int, int]:
        sent = 0
        failed = 0
        for message in pending:
            event = message.event
            logger.info(
                "NOTIFY [%s] %s LESS %s (%s)", event.start_time_local, event.summary, message.threshold, message.uid
            )
            try:
                self.messenger.send(message.text)
            except Exception as exc:
                failed += 1
                logger.error("Failed to notify about %s (%s): %s", event.summary, message.uid, exc)
                self._report(exc)
                continue
            sent += 1
        return sent, failed

    def run_once(
        self,
        cache: EventCache,
        now: datetime | None = None,
        lock: ContextManager[Any] | None = None,
    ) -> NotifyResult:
        started_at = datetime.now(timezone.utc)
        now = now or started_at
        with lock or contextlib.nullcontext():
            pending, suppressed = self.collect(cache, now)
        sent, failed = self.deliver(pending)
        duration_ms = int((datetime.now(timezone.utc) - started_at).total_seconds() * 1000)
        status = "success" if not failed else "partial"
        return NotifyResult(
            status=status,
            message=f"{sent} sent, {failed} failed, {suppressed} suppressed",
            duration_ms=duration_ms,
            sent=sent,
            failed=failed,
            suppressed=suppressed,
        )
