"""
Timestamp and date conversions shared by the columnar encoder and decoder.

Timestamps are stored as epoch milliseconds in UTC. Naive values are taken
to already be in UTC.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Union


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MILLISECOND = timedelta(milliseconds=1)

# Fractional seconds of any width; fromisoformat before 3.11 only takes 3 or 6 digits
FRACTION_PATTERN = re.compile(r"(T\d{2}:\d{2}:\d{2})\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 date-time string into an aware UTC datetime.

    Accepts a trailing "Z" as well as explicit offsets, and fractional
    seconds of any width (digits past microseconds are dropped).

    Raises:
        ValueError: If the string is not a valid ISO-8601 date-time

    Example:
        >>> parse_timestamp("2024-01-15T10:30:00.250Z")
        datetime.datetime(2024, 1, 15, 10, 30, 0, 250000, tzinfo=datetime.timezone.utc)
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = FRACTION_PATTERN.sub(_pad_fraction, text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _pad_fraction(match: "re.Match") -> str:
    digits = match.group(2)[:6].ljust(6, "0")
    return f"{match.group(1)}.{digits}"


def to_epoch_millis(value: Union[datetime, date, str, int]) -> int:
    """
    Convert a timestamp-like value to integer epoch milliseconds.

    Integers are taken to already be epoch milliseconds.

    Raises:
        ValueError: If a string cannot be parsed
        TypeError: If the value is not timestamp-like
    """
    if isinstance(value, bool):
        raise TypeError("expected timestamp, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = parse_timestamp(value)
    elif isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
    elif isinstance(value, date):
        value = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    else:
        raise TypeError(f"expected timestamp, got {type(value).__name__}")
    return (value - EPOCH) // ONE_MILLISECOND


def from_epoch_millis(millis: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=millis)


def format_timestamp(value: Union[datetime, int]) -> str:
    """
    Format a timestamp as an ISO-8601 UTC string with millisecond precision.

    Example:
        >>> format_timestamp(datetime(2024, 1, 15, 10, 30))
        '2024-01-15T10:30:00.000Z'
    """
    if isinstance(value, int):
        value = from_epoch_millis(value)
    elif value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_date(value: Union[date, str]) -> date:
    """
    Convert a date-like value to a date.

    Raises:
        ValueError: If a string is not an ISO-8601 date or date-time
        TypeError: If the value is not date-like
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        if "T" in value:
            return parse_timestamp(value).date()
        return date.fromisoformat(value.strip())
    raise TypeError(f"expected date, got {type(value).__name__}")
