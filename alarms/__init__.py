"""Recurring alarm scheduling for Smart Alarm."""

from .errors import AlarmError, DeliveryError, PersistenceError, ValidationError
from .registry import AlarmRegistry
from .schedule import REPEAT_INTERVAL, Weekday, next_occurrence
from .storage import Alarm, JsonFileStore, MemoryStore
