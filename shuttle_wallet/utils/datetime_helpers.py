"""Datetime utility functions for timezone handling and week bucketing."""
from datetime import date, datetime, time, timedelta, UTC
from typing import Optional
from zoneinfo import ZoneInfo


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware in UTC.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns;
    everything the ledger writes is UTC, so naive values are treated as UTC.

    Example:
        >>> ensure_utc(datetime(2025, 1, 1, 12, 0, 0)).tzinfo == UTC
        True

        >>> ensure_utc(None) is None
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def week_id_for(day: date) -> str:
    """ISO week identifier such as ``2025-W46``."""
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def week_bounds(day: date, tz_name: str = "UTC") -> tuple[str, datetime, datetime]:
    """
    Return ``(week_id, start, end)`` for the Monday-based week containing ``day``.

    ``start`` is Monday 00:00 local time and ``end`` the following Monday,
    both converted to UTC so they can be compared with stored timestamps.
    The period is half-open: ``[start, end)``.
    """
    tz = ZoneInfo(tz_name)
    monday = day - timedelta(days=day.weekday())
    start_local = datetime.combine(monday, time.min, tzinfo=tz)
    end_local = datetime.combine(monday + timedelta(days=7), time.min, tzinfo=tz)
    return week_id_for(monday), start_local.astimezone(UTC), end_local.astimezone(UTC)
