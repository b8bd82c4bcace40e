"""Exceptions raised by the alarm registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .storage import Alarm


class AlarmError(Exception):
    """Base class for recoverable alarm errors."""


class ValidationError(AlarmError):
    """Alarm definition rejected before any state was touched."""


class PersistenceError(AlarmError):
    """The key-value store could not be read or written.

    On a failed write the in-memory change is kept; ``alarm`` holds the record
    the mutation produced so the caller can still show it and retry later.
    """

    def __init__(self, message: str, alarm: Optional["Alarm"] = None):
        super().__init__(message)
        self.alarm = alarm


class DeliveryError(AlarmError):
    """The notification service failed to schedule or cancel a notification."""

    def __init__(self, message: str, alarm: Optional["Alarm"] = None):
        super().__init__(message)
        self.alarm = alarm
