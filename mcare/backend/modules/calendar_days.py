# mcare/backend/modules/calendar_days.py

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo

# Calendar-day math for duties, attendance and reminders.
# Every value handed to the store is a naive wall-clock datetime in the
# deployment zone, so "the same day" means the same local date.


def get_zone(name: Optional[str]) -> Optional[ZoneInfo]:
    """Returns the configured zone, or None for the process-local zone."""
    return ZoneInfo(name) if name else None


def now_local(zone: Optional[ZoneInfo] = None) -> datetime:
    """Current wall-clock time in `zone` (process-local if None), without tzinfo."""
    if zone is None:
        return datetime.now()
    return datetime.now(zone).replace(tzinfo=None)


def to_local(value: datetime, zone: Optional[ZoneInfo] = None) -> datetime:
    """
    Converts an aware datetime into naive wall-clock time of `zone`.
    Naive values are assumed to already be local and are returned unchanged.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(zone).replace(tzinfo=None)


def start_of_day(value: Union[datetime, date], zone: Optional[ZoneInfo] = None) -> datetime:
    """Local midnight of the day `value` falls on."""
    if isinstance(value, datetime):
        value = to_local(value, zone).date()
    return datetime.combine(value, time.min)


def end_of_day(value: Union[datetime, date], zone: Optional[ZoneInfo] = None) -> datetime:
    """Last representable instant of the day, 23:59:59.999999."""
    return start_of_day(value, zone) + timedelta(days=1) - timedelta(microseconds=1)


def day_bounds(value: Union[datetime, date], zone: Optional[ZoneInfo] = None) -> Tuple[datetime, datetime]:
    """Inclusive [start, end] range covering the whole day of `value`."""
    return start_of_day(value, zone), end_of_day(value, zone)


def tomorrow_bounds(now: datetime) -> Tuple[datetime, datetime]:
    return day_bounds(now.date() + timedelta(days=1))


def parse_reminder_time(value: str) -> Tuple[int, int]:
    """
    Parses an "HH:MM" setting into (hour, minute).

    Raises:
        ValueError: when the value is not a valid 24h wall-clock time.
    """
    try:
        hour_str, minute_str = value.strip().split(":")
        hour, minute = int(hour_str), int(minute_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid reminder time '{value}', expected HH:MM")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid reminder time '{value}', expected HH:MM")
    return hour, minute
