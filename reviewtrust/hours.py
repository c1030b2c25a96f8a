"""Business hours: JSON day -> "open - close" map used by business profiles."""

import json
from dataclasses import dataclass

from .constants import CLOSED, DAYS_OF_WEEK

SEPARATOR = " - "


@dataclass
class BusinessHour:
    day: str
    open_time: str = ""
    close_time: str = ""


def empty_hours() -> list[BusinessHour]:
    return [BusinessHour(day) for day in DAYS_OF_WEEK]


def default_hours() -> list[BusinessHour]:
    hours = [BusinessHour(day, "08:00", "18:00") for day in DAYS_OF_WEEK[:5]]
    hours.append(BusinessHour("Saturday", "09:00", "14:00"))
    hours.append(BusinessHour("Sunday"))
    return hours


def parse_hours(value: str | None) -> list[BusinessHour]:
    """Parse a stored hours JSON string into editable rows.

    Keys keep their stored order. A value without the separator (e.g.
    "Closed") lands in `open_time` so that serializing gives it back as is.

    Args:
        value: JSON object string, or None/empty.

    Returns:
        list of BusinessHour; seven empty days when the input is empty or invalid.
    """
    if not value:
        return empty_hours()
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return empty_hours()
    if not isinstance(parsed, dict):
        return empty_hours()

    rows = []
    for day, hours in parsed.items():
        if isinstance(hours, str):
            open_time, _, close_time = hours.partition(SEPARATOR)
            rows.append(BusinessHour(day, open_time, close_time))
        else:
            rows.append(BusinessHour(day))
    return rows


def format_day(hour: BusinessHour) -> str:
    if hour.open_time and hour.close_time:
        return f"{hour.open_time}{SEPARATOR}{hour.close_time}"
    return hour.open_time or hour.close_time or CLOSED


def serialize_hours(hours: list[BusinessHour]) -> str:
    """Serialize rows back to the compact JSON string stored on the business."""
    return json.dumps({h.day: format_day(h) for h in hours}, separators=(",", ":"))


def display_hours(value: str | None) -> list[dict]:
    """Seven day/hours rows for the service page sidebar; missing days read "Closed"."""
    by_day = {h.day: format_day(h) for h in parse_hours(value)}
    return [{"day": day, "hours": by_day.get(day, CLOSED)} for day in DAYS_OF_WEEK]


def normalize_hours(value: str) -> str:
    """Validate a client-supplied hours JSON and return its canonical form.

    Raises:
        ValueError: if the value is not a JSON object of day -> string.
    """
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("business_hours must be a JSON object") from exc
    if not isinstance(parsed, dict):
        raise ValueError("business_hours must be a JSON object")
    unknown = [day for day in parsed if day not in DAYS_OF_WEEK]
    if unknown:
        raise ValueError(f"Unknown days in business_hours: {unknown}")
    if not all(isinstance(v, str) for v in parsed.values()):
        raise ValueError("business_hours values must be strings")
    return serialize_hours(parse_hours(value))
