# residents_dates.py
"""
Every date/time string entering the program goes through this module.

Timestamps are handled as naive datetimes in UTC with millisecond precision,
which is exactly what MongoDB stores and what pymongo hands back, so values
read from the database compare equal to values parsed here.
"""
import datetime

from residents_errors import MalformedInput

UTC = datetime.timezone.utc


def _normalize(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def utcnow() -> datetime.datetime:
    """The clock used for alarm open times and default durations."""
    return _normalize(datetime.datetime.now(UTC))


def _has_zone(time_part: str) -> bool:
    return time_part.endswith("Z") or "+" in time_part or "-" in time_part


def parse_datetime(text) -> datetime.datetime:
    """
    Parses a date or timestamp string.

    - "2024-03-01"                  -> midnight UTC of that day
    - "2024-03-01T10:15:00"         -> assumed UTC
    - "2024-03-01T10:15:00+02:00"   -> converted to UTC
    - "2024-03-01T10:15:00.123Z"    -> UTC
    """
    if isinstance(text, datetime.datetime):
        return _normalize(text)
    value = (text or "").strip()
    if not value:
        raise MalformedInput("Empty date/time value")
    try:
        if "T" not in value:
            day = datetime.date.fromisoformat(value)
            return datetime.datetime(day.year, day.month, day.day)
        if not _has_zone(value.split("T", 1)[1]):
            value += "Z"
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return _normalize(datetime.datetime.fromisoformat(value))
    except ValueError as e:
        raise MalformedInput(f"Cannot parse date/time '{text}': {e}") from None


def parse_date(text) -> datetime.datetime:
    """Parses a calendar date (no time part) to midnight UTC."""
    if isinstance(text, str) and "T" in text:
        raise MalformedInput(f"Expected a date without time, got '{text}'")
    return parse_datetime(text)


def start_of_day(value: datetime.datetime) -> datetime.datetime:
    return datetime.datetime(value.year, value.month, value.day)


def end_of_day(value: datetime.datetime) -> datetime.datetime:
    # Inclusive upper bound: last millisecond of the day.
    return start_of_day(value) + datetime.timedelta(days=1, milliseconds=-1)


def format_datetime(value: datetime.datetime) -> str:
    """Round-trippable ISO form, e.g. 2024-03-01T10:15:00.123Z."""
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"
