"""Calendar windows in the clinic timezone, returned as aware UTC datetimes."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def clinic_tz(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.DEFAULT_TIMEZONE)


def local_today(now: Optional[datetime] = None) -> date:
    """Current date in the clinic timezone."""
    return (now or datetime.now(timezone.utc)).astimezone(clinic_tz()).date()


def local_datetime(day: date, clock: time) -> datetime:
    """Clinic-local wall time converted to UTC."""
    return datetime.combine(day, clock, tzinfo=clinic_tz()).astimezone(timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of a local day."""
    return local_datetime(day, time.min), local_datetime(day + timedelta(days=1), time.min)


def month_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of the local month containing `day`."""
    first = day.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return local_datetime(first, time.min), local_datetime(next_first, time.min)


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def format_hhmm(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"
