from __future__ import annotations

from typing import Any


class Backend:
    """Loads and saves named blobs of structured state.

    ``load`` raises ``NotFoundError`` when nothing was saved under the key yet,
    ``NotEnabledError`` when the backend is switched off, and ``BackendError``
    for anything else.
    """

    name = "backend"

    @property
    def enabled(self) -> bool:
        return False

    def load(self, key: str) -> Any:
        raise NotImplementedError

    def save(self, key: str, value: Any) -> None:
        raise NotImplementedError
