from __future__ import annotations

import logging
import math
import wave
from pathlib import Path
from threading import Event, Thread
from typing import Optional
from urllib.parse import unquote, urlparse

try:
    import winsound
except ImportError:  # pragma: no cover - non-Windows fallback
    winsound = None  # type: ignore

logger = logging.getLogger(__name__)


def resolve_sound_path(sound_ref: str) -> Optional[Path]:
    """Map a sound reference to a local file, or None for remote URIs."""
    if not sound_ref:
        return None
    parsed = urlparse(sound_ref)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    # single letters are Windows drive prefixes, not URI schemes
    if parsed.scheme and len(parsed.scheme) > 1:
        return None
    return Path(sound_ref)


def ensure_alarm_sound(path: Path, duration_seconds: float = 1.5) -> None:
    if path.exists():
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    sample_rate = 24000
    freq = 880.0
    amplitude = 0.4
    samples = int(duration_seconds * sample_rate)
    frames = bytearray()
    for i in range(samples):
        value = int(32767 * amplitude * math.sin(2 * math.pi * freq * i / sample_rate))
        frames.extend(value.to_bytes(2, byteorder="little", signed=True))
    with wave.open(str(path), "w") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(bytes(frames))
    logger.info("Generated fallback alarm sound at %s", path)


class AlarmSoundPlayer:
    def __init__(self, fallback_path: Path):
        self.fallback_path = fallback_path
        self._stop_event = Event()
        self._beep_thread: Optional[Thread] = None

    def pick_sound(self, sound_ref: str) -> Path:
        path = resolve_sound_path(sound_ref)
        if path is not None and path.exists():
            return path
        logger.warning("Sound %s is not available locally, using fallback tone", sound_ref)
        ensure_alarm_sound(self.fallback_path)
        return self.fallback_path

    def start_loop(self, sound_ref: str) -> None:
        path = self.pick_sound(sound_ref)
        self._stop_event.clear()
        if winsound:
            try:
                winsound.PlaySound(
                    str(path),
                    winsound.SND_FILENAME | winsound.SND_LOOP | winsound.SND_ASYNC,
                )
                return
            except RuntimeError:
                logger.warning("winsound.PlaySound failed, falling back to beep loop")

        if self._beep_thread and self._beep_thread.is_alive():
            return
        self._beep_thread = Thread(target=self._beep_loop, name="alarm-beep", daemon=True)
        self._beep_thread.start()

    def stop_loop(self) -> None:
        self._stop_event.set()
        if winsound:
            try:
                winsound.PlaySound(None, winsound.SND_PURGE)
            except RuntimeError:
                logger.debug("winsound.PlaySound purge failed")

    def _beep_loop(self) -> None:  # pragma: no cover - timing loop
        while not self._stop_event.is_set():
            if winsound:
                try:
                    winsound.Beep(880, 250)
                except RuntimeError:
                    logger.debug("winsound.Beep failed inside loop")
            else:
                logger.info("Alarm ringing...")
            self._stop_event.wait(0.75)
