from __future__ import annotations

import logging

from kalendarus.backends.base import Backend
from kalendarus.backends.plainfile import PlainfileBackend
from kalendarus.backends.sqlite import SqliteBackend
from kalendarus.models import AppConfig

logger = logging.getLogger(__name__)

__all__ = ["Backend", "PlainfileBackend", "SqliteBackend", "create_backend"]


def create_backend(config: AppConfig) -> Backend:
    """Pick the first enabled backend; a disabled plainfile one otherwise."""
    candidates: list[Backend] = [PlainfileBackend(config.plainfile), SqliteBackend(config.sqlite)]
    for backend in candidates:
        if backend.enabled:
            return backend
    logger.warning("No backend is enabled; state will not survive restarts")
    return candidates[0]
