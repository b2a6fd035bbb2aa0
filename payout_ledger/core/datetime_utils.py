from datetime import date, datetime, time, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day_exclusive(day: date) -> datetime:
    """First instant after ``day``; used for inclusive end-date filters."""
    return start_of_day(day) + timedelta(days=1)
