from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Event, Lock, Thread
from typing import Callable, Dict, List, NewType, Optional, Protocol, Union

from .schedule import REPEAT_INTERVAL, Weekday
from .storage import AlarmId, SoundRef

logger = logging.getLogger(__name__)

NotificationHandle = NewType("NotificationHandle", str)


@dataclass(frozen=True)
class NotificationPayload:
    alarm_id: AlarmId
    sound_ref: SoundRef
    weekday: Optional[Weekday] = None
    title: str = "Alarm"
    body: str = ""


@dataclass(frozen=True)
class AbsoluteTrigger:
    at: datetime


@dataclass(frozen=True)
class DelayTrigger:
    delay_seconds: float
    repeats: bool = False
    repeat_interval: timedelta = REPEAT_INTERVAL


Trigger = Union[AbsoluteTrigger, DelayTrigger]
NotificationHandler = Callable[[NotificationPayload], None]


class NotificationService(Protocol):
    def schedule(self, payload: NotificationPayload, trigger: Trigger) -> NotificationHandle:
        ...

    def cancel(self, handle: NotificationHandle) -> None:
        ...

    def cancel_all(self) -> None:
        ...


@dataclass
class _Pending:
    payload: NotificationPayload
    fire_ts: float
    interval: Optional[float]


class LocalNotificationService:
    """In-process notification delivery backed by a polling thread.

    Entries live only as long as the process, so a host using this service
    should let the registry re-arm enabled alarms on load.
    """

    def __init__(self, check_interval: float = 0.8, clock: Callable[[], float] = time.time):
        self.check_interval = max(0.2, check_interval)
        self._clock = clock
        self._pending: Dict[NotificationHandle, _Pending] = {}
        self._handler: Optional[NotificationHandler] = None
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def install_handler(self, handler: NotificationHandler) -> None:
        with self._lock:
            if self._handler is not None:
                raise RuntimeError("Notification handler already installed")
            self._handler = handler

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alarm-delivery", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def schedule(self, payload: NotificationPayload, trigger: Trigger) -> NotificationHandle:
        now_ts = self._clock()
        if isinstance(trigger, AbsoluteTrigger):
            entry = _Pending(payload, trigger.at.timestamp(), None)
        elif isinstance(trigger, DelayTrigger):
            if trigger.delay_seconds < 0:
                raise ValueError("delay_seconds must not be negative")
            interval = trigger.repeat_interval.total_seconds() if trigger.repeats else None
            if interval is not None and interval <= 0:
                raise ValueError("repeat_interval must be positive")
            entry = _Pending(payload, now_ts + trigger.delay_seconds, interval)
        else:
            raise TypeError(f"Unsupported trigger: {trigger!r}")
        handle = NotificationHandle(f"nt_{uuid.uuid4().hex[:12]}")
        with self._lock:
            self._pending[handle] = entry
        logger.debug("Scheduled %s for alarm %s at ts=%.0f", handle, payload.alarm_id, entry.fire_ts)
        return handle

    def cancel(self, handle: NotificationHandle) -> None:
        with self._lock:
            if handle not in self._pending:
                raise KeyError(handle)
            del self._pending[handle]
        logger.debug("Cancelled %s", handle)

    def cancel_all(self) -> None:
        with self._lock:
            count = len(self._pending)
            self._pending.clear()
        logger.info("Cancelled all %s pending notifications", count)

    def pending(self) -> List[NotificationHandle]:
        with self._lock:
            return list(self._pending)

    def next_fire_time(self, handle: NotificationHandle) -> Optional[float]:
        with self._lock:
            entry = self._pending.get(handle)
            return entry.fire_ts if entry else None

    def run_pending(self, now_ts: Optional[float] = None) -> int:
        """Fire every due notification once; returns how many fired."""
        now_ts = self._clock() if now_ts is None else now_ts
        due: List[NotificationPayload] = []
        with self._lock:
            for handle, entry in list(self._pending.items()):
                if entry.fire_ts > now_ts:
                    continue
                due.append(entry.payload)
                if entry.interval is None:
                    del self._pending[handle]
                    continue
                # skip periods missed while the process was asleep
                while entry.fire_ts <= now_ts:
                    entry.fire_ts += entry.interval
            handler = self._handler
        for payload in due:
            self._dispatch(handler, payload)
        return len(due)

    def _dispatch(self, handler: Optional[NotificationHandler], payload: NotificationPayload) -> None:
        logger.info("Notification due for alarm %s (sound=%s)", payload.alarm_id, payload.sound_ref)
        if handler is None:
            logger.warning("No notification handler installed, dropping alarm %s", payload.alarm_id)
            return
        try:
            handler(payload)
        except Exception:
            logger.error("Notification handler failed", exc_info=True)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.run_pending()
            self._stop_event.wait(self.check_interval)
