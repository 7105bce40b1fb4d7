from __future__ import annotations

import errno
import json
from pathlib import Path
from typing import Any

from kalendarus.backends.base import Backend
from kalendarus.errors import BackendError, NotEnabledError, NotFoundError
from kalendarus.models import PlainfileConfig


def transform_key(key: str) -> str:
    return key.lstrip("/").replace("/", "_").lower()


class PlainfileBackend(Backend):
    """Stores every key as a JSON document in ``data_dir``."""

    name = "plainfile"

    def __init__(self, config: PlainfileConfig) -> None:
        self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def path_for(self, key: str) -> Path:
        return Path(self.config.data_dir) / f"{transform_key(key)}.json"

    def load(self, key: str) -> Any:
        if not self.enabled:
            raise NotEnabledError(self.name)
        path = self.path_for(key)
        if not path.exists():
            raise NotFoundError(f"{path} does not exist")
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except OSError as exc:
            raise BackendError(f"could not read {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise BackendError(f"could not decode {path}: {exc}") from exc

    def save(self, key: str, value: Any) -> None:
        if not self.enabled:
            raise NotEnabledError(self.name)
        path = self.path_for(key)
        try:
            data = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise BackendError(f"could not encode {key}: {exc}") from exc
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_text(data, encoding="utf-8")
            try:
                tmp_path.replace(path)
            except OSError as exc:
                # Bind-mounted single files cannot be atomically replaced.
                if exc.errno != errno.EBUSY:
                    raise
                path.write_text(data, encoding="utf-8")
                if tmp_path.exists():
                    tmp_path.unlink()
        except OSError as exc:
            raise BackendError(f"could not write to file {path}: {exc}") from exc
