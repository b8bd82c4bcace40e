from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .delivery import DelayTrigger, NotificationHandle, NotificationPayload, NotificationService
from .errors import DeliveryError, PersistenceError, ValidationError
from .schedule import (
    REPEAT_INTERVAL,
    next_alarm_time,
    occurrences,
    parse_time_of_day,
    parse_weekdays,
    seconds_until,
)
from .storage import (
    STORAGE_KEY,
    Alarm,
    AlarmId,
    KeyValueStore,
    SoundRef,
    parse_alarms,
    serialize_alarms,
)

logger = logging.getLogger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class AlarmRegistry:
    """Single owner of the alarm list, its persisted copy and its live notifications.

    Every mutation runs under one lock: validate, talk to the notification
    service, update memory, then write the whole list back to the store.
    """

    def __init__(
        self,
        store: KeyValueStore,
        delivery: NotificationService,
        clock: Optional[Callable[[], datetime]] = None,
        storage_key: str = STORAGE_KEY,
        rearm_on_load: bool = True,
    ):
        self.store = store
        self.delivery = delivery
        self.storage_key = storage_key
        self.rearm_on_load = rearm_on_load
        self._clock = clock or _local_now

        self._alarms: List[Alarm] = []
        self._handles: Dict[AlarmId, List[NotificationHandle]] = {}
        # handles whose cancel failed; the notification may still be live
        self._stale: Dict[AlarmId, List[NotificationHandle]] = {}
        self._lock = RLock()
        self._dirty = False

    def now(self) -> datetime:
        return self._clock()

    @property
    def dirty(self) -> bool:
        """True while the last write failed and the store lags behind memory."""
        return self._dirty

    def load(self) -> List[Alarm]:
        with self._lock:
            self._alarms = self._read_store()
            self._handles = {}
            self._stale = {}
            self._dirty = False
            logger.info("Loaded %s alarms from store key %r", len(self._alarms), self.storage_key)
            if self.rearm_on_load:
                self._rearm_all()
            return list(self._alarms)

    def create(self, alarm_time, days: Iterable, sound_ref: Optional[str]) -> Alarm:
        if not sound_ref or not str(sound_ref).strip():
            raise ValidationError("A sound must be recorded or picked before saving the alarm")
        try:
            time_of_day = parse_time_of_day(alarm_time)
            weekdays = parse_weekdays(days)
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc)) from exc
        if not weekdays:
            raise ValidationError("Select at least one day for the alarm")

        with self._lock:
            alarm = Alarm(
                id=self._new_id(),
                time=time_of_day,
                days=weekdays,
                sound_ref=SoundRef(str(sound_ref)),
                enabled=True,
            )
            self._handles[alarm.id] = self._arm(alarm)
            self._alarms.append(alarm)
            logger.info(
                "Alarm %s created for %s on %s",
                alarm.id,
                alarm.time.strftime("%H:%M"),
                ",".join(day.label for day in alarm.ordered_days),
            )
            self._persist(alarm)
            return alarm

    def toggle(self, alarm_id: str) -> Alarm:
        with self._lock:
            index, current = self._find(alarm_id)
            if current.enabled:
                updated = replace(current, enabled=False)
                failures = self._disarm(current.id)
                self._alarms[index] = updated
                logger.info("Alarm %s disabled", current.id)
                self._persist(updated)
                if failures:
                    raise DeliveryError(
                        f"Alarm {current.id} disabled but {failures} notification(s) could not be cancelled",
                        alarm=updated,
                    )
                return updated

            if self._retry_stale(current.id):
                raise DeliveryError(
                    f"Alarm {current.id} still has notifications that could not be cancelled",
                    alarm=current,
                )
            updated = replace(current, enabled=True)
            self._handles[updated.id] = self._arm(updated)
            self._alarms[index] = updated
            logger.info("Alarm %s enabled", current.id)
            self._persist(updated)
            return updated

    def delete(self, alarm_id: str) -> Alarm:
        with self._lock:
            index, alarm = self._find(alarm_id)
            failures = self._disarm(alarm.id)
            del self._alarms[index]
            logger.info("Alarm %s deleted. Total alarms: %s", alarm.id, len(self._alarms))
            self._persist(alarm)
            if failures:
                raise DeliveryError(
                    f"Alarm {alarm.id} deleted but {failures} notification(s) could not be cancelled",
                    alarm=alarm,
                )
            return alarm

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._alarms)
            for alarm in self._alarms:
                self._keep_stale(alarm.id, self._handles.pop(alarm.id, []))
            failures = self._retry_stale()
            self._alarms = []
            self._handles = {}
            logger.info("Deleted %s alarms", count)
            self._persist()
            if failures:
                raise DeliveryError(f"{failures} notification(s) could not be cancelled")
            return count

    def list(self) -> List[Alarm]:
        with self._lock:
            return list(self._alarms)

    def get(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            for alarm in self._alarms:
                if alarm.id == alarm_id:
                    return alarm
        return None

    def handles(self, alarm_id: str) -> Tuple[NotificationHandle, ...]:
        """Live handles for the alarm, including ones a failed cancel left behind."""
        with self._lock:
            key = AlarmId(alarm_id)
            return tuple(self._handles.get(key, ())) + tuple(self._stale.get(key, ()))

    def stale_handles(self) -> Dict[AlarmId, Tuple[NotificationHandle, ...]]:
        with self._lock:
            return {alarm_id: tuple(handles) for alarm_id, handles in self._stale.items()}

    def next_trigger(self, alarm_id: str, now: Optional[datetime] = None) -> Optional[datetime]:
        alarm = self.get(alarm_id)
        if alarm is None or not alarm.enabled:
            return None
        return next_alarm_time(alarm.time, alarm.days, now or self._clock())

    def next_alarm_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        now = now or self._clock()
        upcoming = [
            next_alarm_time(alarm.time, alarm.days, now)
            for alarm in self.list()
            if alarm.enabled
        ]
        upcoming = [t for t in upcoming if t is not None]
        return min(upcoming) if upcoming else None

    def flush(self) -> None:
        """Retry a failed save and any cancels that failed earlier."""
        with self._lock:
            failures = self._retry_stale()
            self._persist()
            if failures:
                raise DeliveryError(f"{failures} notification(s) could not be cancelled")

    def _find(self, alarm_id: str) -> Tuple[int, Alarm]:
        for index, alarm in enumerate(self._alarms):
            if alarm.id == alarm_id:
                return index, alarm
        raise KeyError(alarm_id)

    def _new_id(self) -> AlarmId:
        existing = {alarm.id for alarm in self._alarms}
        while True:
            candidate = AlarmId(f"al_{uuid.uuid4().hex[:8]}")
            if candidate not in existing:
                return candidate

    def _arm(self, alarm: Alarm) -> List[NotificationHandle]:
        """Schedule one weekly notification per day, rolling back on failure."""
        now = self._clock()
        issued: List[NotificationHandle] = []
        for day, fire_at in occurrences(alarm.time, alarm.days, now).items():
            payload = NotificationPayload(
                alarm_id=alarm.id,
                sound_ref=alarm.sound_ref,
                weekday=day,
                title="Alarm",
                body=f"{day.label} {alarm.time.strftime('%H:%M')}",
            )
            trigger = DelayTrigger(
                delay_seconds=max(0.0, seconds_until(fire_at, now)),
                repeats=True,
                repeat_interval=REPEAT_INTERVAL,
            )
            try:
                handle = self.delivery.schedule(payload, trigger)
            except Exception as exc:
                logger.error("Scheduling alarm %s for %s failed: %s", alarm.id, day.label, exc)
                self._keep_stale(alarm.id, self._cancel_handles(alarm.id, issued))
                raise DeliveryError(f"Could not schedule alarm {alarm.id} for {day.label}") from exc
            logger.debug("Alarm %s armed for %s (%s)", alarm.id, fire_at.isoformat(), handle)
            issued.append(handle)
        return issued

    def _disarm(self, alarm_id: AlarmId) -> int:
        handles = self._handles.pop(alarm_id, []) + self._stale.pop(alarm_id, [])
        failed = self._cancel_handles(alarm_id, handles)
        self._keep_stale(alarm_id, failed)
        return len(failed)

    def _retry_stale(self, alarm_id: Optional[AlarmId] = None) -> int:
        ids = [alarm_id] if alarm_id is not None else list(self._stale)
        failures = 0
        for key in ids:
            failed = self._cancel_handles(key, self._stale.pop(key, []))
            self._keep_stale(key, failed)
            failures += len(failed)
        return failures

    def _keep_stale(self, alarm_id: AlarmId, handles: List[NotificationHandle]) -> None:
        if handles:
            self._stale.setdefault(alarm_id, []).extend(handles)

    def _cancel_handles(self, alarm_id: AlarmId, handles: List[NotificationHandle]) -> List[NotificationHandle]:
        failed: List[NotificationHandle] = []
        for handle in handles:
            try:
                self.delivery.cancel(handle)
            except Exception as exc:
                failed.append(handle)
                logger.warning("Failed to cancel notification %s for alarm %s: %s", handle, alarm_id, exc)
        return failed

    def _rearm_all(self) -> None:
        try:
            self.delivery.cancel_all()
        except Exception as exc:
            logger.warning("cancel_all before re-arming failed: %s", exc)
        changed = False
        for index, alarm in enumerate(self._alarms):
            if not alarm.enabled:
                continue
            if not alarm.days:
                logger.warning("Alarm %s has no days selected and will never ring", alarm.id)
                continue
            try:
                self._handles[alarm.id] = self._arm(alarm)
            except DeliveryError as exc:
                logger.error("Re-arming alarm %s failed, disabling it: %s", alarm.id, exc)
                self._alarms[index] = replace(alarm, enabled=False)
                changed = True
        if changed:
            try:
                self._persist()
            except PersistenceError:
                logger.error("Could not persist alarms disabled during re-arm")

    def _read_store(self) -> List[Alarm]:
        try:
            raw = self.store.get(self.storage_key)
        except Exception as exc:
            logger.error("Failed to read alarms from store: %s", exc)
            return []
        if not raw:
            logger.debug("No persisted alarms under %r", self.storage_key)
            return []
        try:
            loaded = parse_alarms(raw)
        except ValueError as exc:
            logger.error("Failed to parse persisted alarms: %s", exc)
            return []
        alarms: List[Alarm] = []
        seen = set()
        for alarm in loaded:
            if alarm.id in seen:
                logger.warning("Skipping alarm with duplicate id %s", alarm.id)
                continue
            seen.add(alarm.id)
            alarms.append(alarm)
        return alarms

    def _persist(self, alarm: Optional[Alarm] = None) -> None:
        try:
            ok = self.store.set(self.storage_key, serialize_alarms(self._alarms))
        except Exception as exc:
            self._dirty = True
            logger.error("Failed to save alarms: %s", exc)
            raise PersistenceError(f"Could not save alarms: {exc}", alarm=alarm) from exc
        if not ok:
            self._dirty = True
            logger.error("Store rejected write of %s alarms", len(self._alarms))
            raise PersistenceError("Could not save alarms", alarm=alarm)
        self._dirty = False
        logger.debug("Saved %s alarms", len(self._alarms))
