from __future__ import annotations

import json
from typing import Any

import requests

from kalendarus.errors import MessengerError, NotEnabledError
from kalendarus.messengers.base import Messenger
from kalendarus.models import TELEGRAM_PARSE_MODES, TelegramConfig


class TelegramMessenger(Messenger):
    name = "telegram"

    def __init__(self, config: TelegramConfig, timeout_seconds: int = 30) -> None:
        self.config = config
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _endpoint(self) -> str:
        return f"{self.config.url}{self.config.token}/sendMessage"

    def build_payload(self, message: str) -> dict[str, Any]:
        if self.config.parse_mode not in TELEGRAM_PARSE_MODES:
            raise MessengerError(
                f"parseMode {self.config.parse_mode} is not valid, please use 'Markdown' or 'HTML'"
            )
        payload: dict[str, Any] = {
            "chat_id": self.config.chat_id,
            "text": message,
        }
        if self.config.parse_mode:
            payload["parse_mode"] = self.config.parse_mode
        if self.config.disable_web_page_preview:
            payload["disable_web_page_preview"] = True
        if self.config.disable_notification:
            payload["disable_notification"] = True
        return payload

    def send(self, message: str) -> None:
        if not self.enabled:
            raise NotEnabledError(self.name)
        payload = self.build_payload(message)
        try:
            response = requests.post(
                self._endpoint(),
                headers={"Content-Type": "application/json"},
                json=payload,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise MessengerError(f"telegram request failed: {exc}") from exc
        if response.status_code == 200:
            return
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise MessengerError(
                f"failed to understand Telegram response (err: {exc}). "
                f"code: {response.status_code} content: {response.text[:300]}"
            ) from exc
        if not isinstance(body, dict):
            body = {}
        raise MessengerError(
            f"sendMessage error ({body.get('error_code', response.status_code)}) "
            f"description: {body.get('description', '')}"
        )
