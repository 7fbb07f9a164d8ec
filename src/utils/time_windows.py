"""Viewing time window helpers (date + wall-clock times)."""

from datetime import date, datetime, time, timezone
from typing import Union

from src.utils.errors import BadRequestError


def parse_date(value: Union[str, date]) -> date:
    """Parse an ISO appointment date (yyyy-MM-dd, time part ignored)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).split("T")[0])
    except ValueError:
        raise BadRequestError(f"Invalid appointment date: {value}")


def parse_time(value: Union[str, time]) -> time:
    """Parse HH:MM or HH:MM:SS."""
    if isinstance(value, time):
        return value
    try:
        parts = [int(p) for p in str(value).split(":")]
        if len(parts) not in (2, 3):
            raise ValueError(value)
        return time(*parts)
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid time: {value}")


def combine_date_time(day: Union[str, date], at: Union[str, time]) -> datetime:
    """Absolute UTC instant for a date and a wall-clock time."""
    return datetime.combine(parse_date(day), parse_time(at), tzinfo=timezone.utc)


def window_for(day: Union[str, date], start: Union[str, time], end: Union[str, time]) -> tuple[datetime, datetime]:
    """Return the [start, end) instants, rejecting empty or inverted windows."""
    start_at = combine_date_time(day, start)
    end_at = combine_date_time(day, end)
    if end_at <= start_at:
        raise BadRequestError("End time must be after start time.")
    return start_at, end_at


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: touching endpoints do not overlap."""
    return a_start < b_end and b_start < a_end


def format_time(value: Union[str, time]) -> str:
    """Canonical HH:MM[:SS] text stored in the appointments table."""
    parsed = parse_time(value)
    if parsed.second:
        return parsed.strftime("%H:%M:%S")
    return parsed.strftime("%H:%M")
