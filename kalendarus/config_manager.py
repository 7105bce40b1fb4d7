from __future__ import annotations

import copy
import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml

from kalendarus.errors import ConfigError
from kalendarus.models import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "/etc/kalendarus/kalendarus.yaml"
CONFIG_FILE_ENV = "KALENDARUS_CONFIG_FILE"


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_config_path(explicit: str | os.PathLike[str] | None = None) -> Path | None:
    if explicit:
        return Path(explicit)
    from_env = os.getenv(CONFIG_FILE_ENV, "").strip()
    if from_env:
        return Path(from_env)
    default = Path(DEFAULT_CONFIG_FILE)
    if default.exists():
        return default
    return None


class ConfigManager:
    """Reads the YAML config file and layers command-line overrides on top."""

    def __init__(
        self,
        config_path: str | os.PathLike[str] | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> None:
        self.config_path = Path(config_path) if config_path else None
        self.overrides = {key: value for key, value in (overrides or {}).items() if value is not None}
        self._lock = threading.RLock()

    def _read_file(self) -> dict[str, Any]:
        if self.config_path is None:
            logger.debug("Skipping kalendarus config file")
            return {}
        logger.debug("Loading %s", self.config_path)
        try:
            with self.config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except OSError as exc:
            raise ConfigError(f"cannot read config file {self.config_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"cannot parse config file {self.config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"config file {self.config_path} must contain a mapping")
        return data

    def load(self) -> AppConfig:
        with self._lock:
            data = _deep_merge(self._read_file(), self.overrides)
            try:
                config = AppConfig.from_dict(data)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"invalid configuration: {exc}") from exc
            config.validate()
            return config

    def masked(self, config: AppConfig | None = None) -> dict[str, Any]:
        payload = (config or self.load()).to_dict()
        if payload.get("telegram", {}).get("token"):
            payload["telegram"]["token"] = "***"
        return payload
