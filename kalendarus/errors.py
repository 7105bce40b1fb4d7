from __future__ import annotations


class KalendarusError(Exception):
    """Base class for all kalendarus failures."""


class ConfigError(KalendarusError):
    pass


class NotFoundError(KalendarusError):
    pass


class NotEnabledError(KalendarusError):
    def __init__(self, service: str) -> None:
        super().__init__(f"{service} service is not enabled")
        self.service = service


class BackendError(KalendarusError):
    pass


class MessengerError(KalendarusError):
    pass


class FetchError(KalendarusError):
    pass
