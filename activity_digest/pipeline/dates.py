"""UTC date windows for day and range collection."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Union

from activity_digest.models.data_models import DateWindow

DateLike = Union[date, datetime, str]

END_OF_DAY = time(23, 59, 59, 999000)


def to_date(value: DateLike) -> date:
    """
    Coerce a date, datetime or "YYYY-MM-DD" string to a calendar date.

    Aware datetimes are converted to UTC first.

    Raises:
        ValueError: For unparseable strings
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip()[:10])
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid date string: {value!r}") from None


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(to_date(value), time.min, tzinfo=timezone.utc)


def end_of_day(value: DateLike) -> datetime:
    return datetime.combine(to_date(value), END_OF_DAY, tzinfo=timezone.utc)


def day_window(value: DateLike) -> DateWindow:
    """[00:00:00.000Z, 23:59:59.999Z] of a single UTC day."""
    return DateWindow(start=start_of_day(value), end=end_of_day(value))


def range_window(start: DateLike, end: DateLike) -> DateWindow:
    """
    Inclusive window from the start of `start` to the end of `end`.

    Raises:
        ValueError: If end is before start
    """
    if to_date(end) < to_date(start):
        raise ValueError(f"End date {to_date(end)} is before start date {to_date(start)}")
    return DateWindow(start=start_of_day(start), end=end_of_day(end))


def iterate_days(start: DateLike, end: DateLike) -> Iterator[date]:
    """Every calendar day from start to end, inclusive."""
    current, last = to_date(start), to_date(end)
    while current <= last:
        yield current
        current += timedelta(days=1)


def days_in_range(start: DateLike, end: DateLike) -> List[str]:
    return [day.isoformat() for day in iterate_days(start, end)]


def format_date_range(start: DateLike, end: DateLike) -> str:
    start_str, end_str = to_date(start).isoformat(), to_date(end).isoformat()
    if start_str == end_str:
        return start_str
    return f"{start_str} to {end_str}"


def isoformat_z(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a "Z" suffix."""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"
