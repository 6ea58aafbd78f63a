"""
Clock and interval arithmetic.

All datetimes handled by the planner are naive local times for the user's
timezone. Intervals are half-open: [start, end).
"""

from datetime import date, datetime, time, timedelta

import pytz


def parse_time(time_str: str) -> time:
    """Parse "HH:MM" string to time object."""
    parts = time_str.split(":")
    if len(parts) != 2:
        raise ValueError(f"Expected HH:MM, got {time_str!r}")
    return time(int(parts[0]), int(parts[1]))


def combine(day: date, time_str: str) -> datetime:
    """Naive datetime for an "HH:MM" clock time on the given day."""
    return datetime.combine(day, parse_time(time_str))


def resolve_day_bounds(day: date, wake_time: str, sleep_time: str) -> tuple[datetime, datetime]:
    """
    Wake and sleep datetimes for a plan day.

    A sleep time at or before the wake time belongs to the following morning
    (e.g. wake 08:00, sleep 00:30).
    """
    wake = combine(day, wake_time)
    sleep = combine(day, sleep_time)
    if sleep <= wake:
        sleep += timedelta(days=1)
    return wake, sleep


def add_minutes(dt: datetime, minutes: int | float) -> datetime:
    return dt + timedelta(minutes=minutes)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (negative if end precedes start)."""
    return round((end - start).total_seconds() / 60)


def round_up_to_interval(dt: datetime, interval_minutes: int) -> datetime:
    """Round up to the next multiple of interval_minutes past the hour.

    Times already on a boundary (with zero seconds) are returned unchanged.
    """
    floored = dt.replace(second=0, microsecond=0)
    remainder = floored.minute % interval_minutes
    if remainder == 0 and floored == dt:
        return floored
    return floored + timedelta(minutes=interval_minutes - remainder)


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open overlap test. Touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def free_intervals(
    occupied: list[tuple[datetime, datetime]],
    window_start: datetime,
    window_end: datetime,
) -> list[tuple[datetime, datetime]]:
    """
    Gaps inside [window_start, window_end) not covered by any occupied interval.

    Occupied intervals may overlap each other and may extend past the window.
    Zero-length intervals occupy nothing.
    """
    gaps = []
    cursor = window_start
    for start, end in sorted(occupied):
        if end <= cursor or start >= end:
            continue
        if start >= window_end:
            break
        if start > cursor:
            gaps.append((cursor, start))
        cursor = max(cursor, end)
        if cursor >= window_end:
            break
    if cursor < window_end:
        gaps.append((cursor, window_end))
    return gaps


def get_current_datetime_in_tz(tz_name: str) -> datetime:
    """
    Get current datetime in the specified timezone.

    The host clock is usually UTC; plans are built in the user's local time.

    Args:
        tz_name: IANA timezone name (e.g., "Europe/London")

    Returns:
        Current datetime in the specified timezone (naive, for local comparisons)
    """
    tz = pytz.timezone(tz_name)
    now_utc = datetime.now(pytz.UTC)
    now_local = now_utc.astimezone(tz)
    # Naive for consistent comparisons with anchor times
    return now_local.replace(tzinfo=None)
