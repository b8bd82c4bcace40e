from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from alarms.delivery import NotificationHandle
from alarms.registry import AlarmRegistry
from alarms.storage import MemoryStore


def monday_9am() -> datetime:
    # 2025-01-06 is a Monday
    return datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


class FakeDelivery:
    def __init__(self) -> None:
        self.scheduled: Dict[NotificationHandle, tuple] = {}
        self.cancelled: List[NotificationHandle] = []
        self.cancel_all_calls = 0
        self.fail_on_schedule: Optional[int] = None
        self.fail_cancel = False
        self._counter = 0

    def schedule(self, payload, trigger) -> NotificationHandle:
        self._counter += 1
        if self.fail_on_schedule is not None and self._counter == self.fail_on_schedule:
            raise RuntimeError("delivery service unavailable")
        handle = NotificationHandle(f"h{self._counter}")
        self.scheduled[handle] = (payload, trigger)
        return handle

    def cancel(self, handle) -> None:
        if self.fail_cancel:
            raise RuntimeError("cancel failed")
        self.cancelled.append(handle)
        self.scheduled.pop(handle, None)

    def cancel_all(self) -> None:
        self.cancel_all_calls += 1
        self.scheduled.clear()

    def active_for(self, alarm_id) -> List[NotificationHandle]:
        return [h for h, (payload, _) in self.scheduled.items() if payload.alarm_id == alarm_id]


class FlakyStore(MemoryStore):
    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_writes = False
        self.writes = 0

    def set(self, key: str, value: str) -> bool:
        if self.fail_writes:
            return False
        self.writes += 1
        return super().set(key, value)


@pytest.fixture
def delivery() -> FakeDelivery:
    return FakeDelivery()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def registry(store, delivery) -> AlarmRegistry:
    return AlarmRegistry(store, delivery, clock=monday_9am)
