from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, NewType, Optional, Protocol

from .schedule import Weekday, parse_time_of_day, parse_weekdays

logger = logging.getLogger(__name__)

STORAGE_KEY = "alarms"

AlarmId = NewType("AlarmId", str)
SoundRef = NewType("SoundRef", str)


@dataclass(frozen=True)
class Alarm:
    id: AlarmId
    time: time
    days: frozenset = field(default_factory=frozenset)
    sound_ref: SoundRef = SoundRef("")
    enabled: bool = True

    @property
    def ordered_days(self) -> List[Weekday]:
        return sorted(self.days)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "time": self.time.strftime("%H:%M"),
            "days": [day.label for day in self.ordered_days],
            "soundRef": self.sound_ref,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Alarm":
        alarm_id = data.get("id")
        time_raw = data.get("time")
        sound_raw = data.get("soundRef") or data.get("sound_ref")
        if not alarm_id or not time_raw or not sound_raw:
            raise ValueError("Alarm payload missing id/time/soundRef fields")
        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ValueError(f"Alarm {alarm_id} has a non-boolean enabled flag: {enabled!r}")
        return cls(
            id=AlarmId(str(alarm_id)),
            time=parse_time_of_day(time_raw),
            days=parse_weekdays(data.get("days") or []),
            sound_ref=SoundRef(str(sound_raw)),
            enabled=enabled,
        )


def serialize_alarms(alarms: Iterable[Alarm]) -> str:
    return json.dumps([a.to_dict() for a in alarms], ensure_ascii=False)


def parse_alarms(raw: str) -> List[Alarm]:
    payload = json.loads(raw)
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of alarms, got {type(payload).__name__}")
    alarms: List[Alarm] = []
    for item in payload:
        try:
            alarms.append(Alarm.from_dict(item))
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Skipping alarm item due to parse error: %s", exc)
    return alarms


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> bool:
        ...


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True


class JsonFileStore:
    """Key-value store kept in a single JSON object on disk.

    Writes go to a sibling ``.tmp`` file which is then renamed over the
    original, so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            data = self._read()
        value = data.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError(f"Value stored under {key!r} is not a string")
        return value

    def set(self, key: str, value: str) -> bool:
        with self._lock:
            try:
                data = self._read()
            except ValueError:
                logger.warning("Overwriting corrupted store at %s", self.path)
                data = {}
            except OSError as exc:
                logger.error("Failed to read store %s before write: %s", self.path, exc)
                return False
            data[key] = value
            try:
                self._write(data)
            except OSError as exc:
                logger.error("Failed to write store %s: %s", self.path, exc)
                return False
        return True

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
        if not isinstance(payload, dict):
            raise ValueError(f"Store file {self.path} does not hold a JSON object")
        return payload

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)
