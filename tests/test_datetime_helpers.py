"""Tests for datetime helper utilities."""
from datetime import UTC, date, datetime, timedelta, timezone

from shuttle_wallet.utils.datetime_helpers import ensure_utc, week_bounds, week_id_for


def test_ensure_utc_none_returns_none():
    """The helper should gracefully handle ``None`` inputs."""

    assert ensure_utc(None) is None


def test_ensure_utc_attaches_timezone_to_naive_datetime():
    """Naive datetimes should be marked as UTC without adjusting the clock."""

    naive = datetime(2024, 5, 1, 12, 30, 0)

    result = ensure_utc(naive)

    assert result.tzinfo is UTC
    assert result.replace(tzinfo=None) == naive


def test_ensure_utc_converts_from_other_timezones_to_utc():
    """Timezone-aware datetimes not already UTC should be converted."""

    bangkok = timezone(timedelta(hours=7))
    aware = datetime(2024, 5, 1, 19, 0, tzinfo=bangkok)

    result = ensure_utc(aware)

    assert result.tzinfo is UTC
    assert result.replace(tzinfo=None) == datetime(2024, 5, 1, 12, 0)


def test_week_id_uses_iso_weeks():
    assert week_id_for(date(2025, 11, 10)) == "2025-W46"
    assert week_id_for(date(2025, 1, 6)) == "2025-W02"
    # ISO year differs from the calendar year around new year
    assert week_id_for(date(2024, 12, 30)) == "2025-W01"


def test_week_bounds_are_monday_based_in_local_time():
    week_id, start, end = week_bounds(date(2025, 11, 13), "Asia/Bangkok")

    assert week_id == "2025-W46"
    assert start == datetime(2025, 11, 9, 17, 0, tzinfo=UTC)
    assert end == datetime(2025, 11, 16, 17, 0, tzinfo=UTC)
    assert start.tzinfo is UTC


def test_week_bounds_for_sunday_and_monday():
    assert week_bounds(date(2025, 11, 16))[0] == "2025-W46"
    assert week_bounds(date(2025, 11, 17))[0] == "2025-W47"


def test_week_bounds_default_utc():
    _, start, end = week_bounds(date(2025, 11, 10))

    assert start == datetime(2025, 11, 10, tzinfo=UTC)
    assert end - start == timedelta(days=7)
