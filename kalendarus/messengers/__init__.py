from __future__ import annotations

import logging

from kalendarus.messengers.base import Messenger
from kalendarus.messengers.telegram import TelegramMessenger
from kalendarus.models import AppConfig

logger = logging.getLogger(__name__)

__all__ = ["Messenger", "TelegramMessenger", "create_messenger"]


def create_messenger(config: AppConfig) -> Messenger:
    messenger = TelegramMessenger(config.telegram, timeout_seconds=config.http_timeout_seconds)
    if not messenger.enabled:
        logger.warning("No messenger is enabled; notifications will fail with 'not enabled'")
    return messenger
