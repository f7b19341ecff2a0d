"""
Civil-time helpers for attendance.

Every "today" and "late / early leave" decision goes through these functions so
the date and minute-of-day always come from the same fixed zone, independent of
the host process's local time zone.
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Optional

import pytz

from ..config import ATTENDANCE_TIMEZONE

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


def get_zone(name: Optional[str] = None):
    return pytz.timezone(name or ATTENDANCE_TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes coming back from the store are UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_zoned(value: datetime, zone_name: Optional[str] = None) -> datetime:
    return ensure_utc(value).astimezone(get_zone(zone_name))


def zoned_date(value: Optional[datetime] = None, zone_name: Optional[str] = None) -> date:
    return to_zoned(value or utc_now(), zone_name).date()


def zoned_date_iso(value: Optional[datetime] = None, zone_name: Optional[str] = None) -> str:
    """Calendar date (YYYY-MM-DD) of the timestamp in the attendance zone"""
    return zoned_date(value, zone_name).isoformat()


def zoned_minutes(value: datetime, zone_name: Optional[str] = None) -> int:
    """Minutes since local midnight in the attendance zone"""
    local = to_zoned(value, zone_name)
    return local.hour * 60 + local.minute


def parse_time_to_minutes(value: str) -> int:
    parts = str(value or "").strip().split(":")
    try:
        hour = int(parts[0]) if parts[0] else 0
        minute = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        return 0
    return hour * 60 + minute


def normalize_time(value, fallback: str) -> str:
    """Return HH:MM:SS for a valid HH:MM[:SS] string, otherwise the fallback"""
    raw = str(value if value is not None else "").strip()
    if not raw:
        return fallback

    match = TIME_PATTERN.match(raw)
    if not match:
        return fallback

    hh, mm, ss = match.group(1), match.group(2), match.group(3) or "00"
    return f"{hh}:{mm}:{ss}"


def normalize_number(value, fallback: float) -> float:
    if value is None or value == "" or isinstance(value, bool):
        return fallback
    try:
        number = float(str(value).strip()) if not isinstance(value, (int, float)) else float(value)
    except (ValueError, OverflowError):
        # Integers too large for a float overflow instead of becoming inf
        return fallback
    return number if math.isfinite(number) else fallback


def round2(value: float) -> float:
    # Half-up, not banker's rounding
    return math.floor(value * 100 + 0.5) / 100


def hours_between(start: datetime, end: datetime) -> float:
    return round2((ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600)


def zoned_datetime(day: date, time_of_day: str, zone_name: Optional[str] = None) -> datetime:
    """Aware UTC datetime for a civil date + HH:MM[:SS] in the attendance zone"""
    minutes = parse_time_to_minutes(time_of_day)
    naive = datetime(day.year, day.month, day.day, minutes // 60, minutes % 60)
    return get_zone(zone_name).localize(naive).astimezone(timezone.utc)
