"""Local-time helpers for the delivery window and the calendar query window."""

from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from reminder_bell.models.domain.reminder_domain import TimeRange


def resolve_timezone(name: str | None) -> tzinfo | None:
    """ZoneInfo for a configured name; None means the system local zone."""
    return ZoneInfo(name) if name else None


def local_now(tz: tzinfo | None = None) -> datetime:
    """Aware current time in tz (or the system local zone)."""
    return datetime.now(tz) if tz else datetime.now().astimezone()


def is_within_window(now: datetime, start: time, end: time) -> bool:
    """Inclusive minute-resolution window check; windows may wrap midnight."""
    current = now.time().replace(second=0, microsecond=0)
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def local_midnight(day: date, tz: tzinfo | None = None) -> datetime:
    """Start of day in tz; without tz the system zone's offset for that date is used."""
    if tz:
        return datetime.combine(day, time.min, tzinfo=tz)
    return datetime.combine(day, time.min).astimezone()


def day_window(now: datetime, days_ahead: int = 1, tz: tzinfo | None = None) -> TimeRange:
    """
    Local midnight-to-midnight window for the day `days_ahead` days after now.

    Each bound gets its own UTC offset, so the window is 23 or 25 hours long
    on daylight-saving changes.
    """
    day = (now.astimezone(tz) if tz else now).date() + timedelta(days=days_ahead)
    return TimeRange(
        start=local_midnight(day, tz),
        end=local_midnight(day + timedelta(days=1), tz),
    )


def format_clock(moment: datetime, tz: tzinfo | None = None) -> str:
    """H:MM in local time, e.g. 9:05."""
    local = moment.astimezone(tz) if tz else moment.astimezone()
    return f"{local.hour}:{local.minute:02d}"
