from __future__ import annotations

import logging
from datetime import datetime, timezone

from kalendarus.backends import Backend
from kalendarus.errors import BackendError, KalendarusError, NotEnabledError, NotFoundError
from kalendarus.event_cache import EventCache

logger = logging.getLogger(__name__)

STATE_KEY = "kalendarus/events/cache"


class StatePersistence:
    """Moves the event cache in and out of a backend, gated by the dirty flag.

    Callers hold the processor lock around ``load`` and ``save``.
    """

    def __init__(self, cache: EventCache, backend: Backend, key: str = STATE_KEY) -> None:
        self.cache = cache
        self.backend = backend
        self.key = key
        self.last_saved_at: datetime | None = None

    def load(self) -> bool:
        logger.debug("Loading state from %s backend...", self.backend.name)
        try:
            payload = self.backend.load(self.key)
        except NotFoundError:
            logger.info("No saved state found, starting with an empty cache")
            return False
        except KalendarusError as exc:
            logger.warning("Could not load state, starting with an empty cache: %s", exc)
            return False
        if not isinstance(payload, dict):
            logger.warning("Saved state is not a mapping, starting with an empty cache")
            return False
        try:
            self.cache.replace_all(payload)
        except BackendError as exc:
            logger.warning("Saved state is unreadable, starting with an empty cache: %s", exc)
            return False
        logger.debug("Loaded %d cached events", len(self.cache))
        return True

    def save(self) -> bool:
        """Persist the cache if it changed; return True when a write happened.

        ``BackendError`` propagates and leaves the cache dirty so the next
        cycle writes again. A disabled backend is never retried.
        """
        if not self.cache.dirty:
            return False
        logger.debug("Saving state to %s backend...", self.backend.name)
        try:
            self.backend.save(self.key, self.cache.to_dict())
        except NotEnabledError as exc:
            logger.debug("Skipping state save: %s", exc)
            self.cache.mark_clean()
            return False
        self.cache.mark_clean()
        self.last_saved_at = datetime.now(timezone.utc)
        logger.debug("Saved %d cached events", len(self.cache))
        return True
