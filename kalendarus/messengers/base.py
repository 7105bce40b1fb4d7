from __future__ import annotations


class Messenger:
    """Delivers a formatted text message over some channel."""

    name = "messenger"

    @property
    def enabled(self) -> bool:
        return False

    def send(self, message: str) -> None:
        raise NotImplementedError
