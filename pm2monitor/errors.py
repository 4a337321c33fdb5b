"""Exceptions raised by the PM2 monitor."""


class MonitorError(Exception):
    """Base class for monitor errors."""


class InventoryError(MonitorError):
    """The process manager could not be reached or returned unusable output."""


class RestartError(InventoryError):
    """A single restart request failed."""

    def __init__(self, pm_id: int, name: str, message: str):
        super().__init__(f"{name} (#{pm_id}): {message}")
        self.pm_id = pm_id
        self.name = name
        self.message = message
