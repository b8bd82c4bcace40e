from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Return the named zone, or None to follow the host's local time."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        logger.warning("Failed to load timezone %s via zoneinfo (%s), using host local time", name, exc)
        return None


def now_in_tz(tz: Optional[tzinfo]) -> datetime:
    if tz:
        return datetime.now(tz)
    return datetime.now().astimezone()


def make_clock(tz: Optional[tzinfo]) -> Callable[[], datetime]:
    return lambda: now_in_tz(tz)


def format_tz_offset(tz: Optional[tzinfo]) -> str:
    sample = now_in_tz(tz)
    offset = sample.utcoffset()
    if offset is None:
        return ""
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def format_next_ring(dt: datetime, now: datetime) -> str:
    if dt.date() == now.date():
        day_prefix = "today "
    elif (dt.date() - now.date()).days == 1:
        day_prefix = "tomorrow "
    elif 0 < (dt.date() - now.date()).days < 7:
        day_prefix = dt.strftime("%a ")
    else:
        day_prefix = dt.strftime("%d.%m ")
    return f"{day_prefix}{dt.strftime('%H:%M')}"
