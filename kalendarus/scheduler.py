from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class IntervalLoop:
    """Runs ``job`` right away and then every ``interval_seconds`` until stopped.

    ``stop_event`` may be shared between loops. A loop only notices it between
    runs, so a job in progress always finishes.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[str], object],
        interval_seconds: float,
        stop_event: Optional[threading.Event] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.name = name
        self.job = job
        self.interval_seconds = interval_seconds
        self.on_error = on_error
        self._thread: Optional[threading.Thread] = None
        self._stop_event = stop_event or threading.Event()
        self._manual_trigger_event = threading.Event()

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5) -> None:
        self._stop_event.set()
        self._manual_trigger_event.set()
        self.join(timeout)

    def join(self, timeout: float | None = None) -> None:
        if self._thread:
            self._thread.join(timeout=timeout)

    def trigger_manual(self) -> None:
        self._manual_trigger_event.set()

    def _run(self, trigger: str) -> None:
        try:
            self.job(trigger)
        except Exception as exc:
            if self.on_error is None:
                logger.exception("%s run failed", self.name)
                return
            self.on_error(exc)

    def _loop(self) -> None:
        self._run("startup")

        while not self._stop_event.is_set():
            manual = self._manual_trigger_event.wait(timeout=self.interval_seconds)
            self._manual_trigger_event.clear()
            if self._stop_event.is_set():
                break
            self._run("manual" if manual else "scheduled")
