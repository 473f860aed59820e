"""Exceptions raised by reminder collaborators."""


class ReminderError(Exception):
    """Base class for reminder domain errors."""


class StoreError(ReminderError):
    """Document store read or write failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayError(ReminderError):
    """Delivery gateway call failed as a whole (not per token)."""


class TextServiceError(ReminderError):
    """AI text service failed or returned unusable output."""
