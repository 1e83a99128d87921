"""Primitive checks shared by Slack modal input and the request schemas."""

from __future__ import annotations

import re
from datetime import date
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ValidationError

TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")
INTEGER_PATTERN = re.compile(r"^\d+$")

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


def is_valid_time(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    match = TIME_PATTERN.match(value)
    if not match:
        return False
    return int(match.group(1)) < 24 and int(match.group(2)) < 60


def parse_time(value: str) -> tuple[int, int]:
    """Split a validated ``HH:MM`` string into hour and minute."""

    if not is_valid_time(value):
        raise ValidationError({"time": "Use HH:MM format (e.g. 17:00)"})
    hour, minute = value.split(":")
    return int(hour), int(minute)


def is_valid_timezone(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def parse_percentage(raw: Any, field: str = "value") -> int:
    """Return ``raw`` as an integer in 0..100 or raise ``ValidationError``."""

    if isinstance(raw, bool):
        raise ValidationError({field: "Enter a whole number between 0 and 100."})
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and INTEGER_PATTERN.match(raw.strip()):
        value = int(raw.strip())
    else:
        raise ValidationError({field: "Enter a whole number between 0 and 100."})
    if not 0 <= value <= 100:
        raise ValidationError({field: "Enter a whole number between 0 and 100."})
    return value


def parse_iso_date(raw: Any, field: str) -> date:
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw))
    except ValueError as exc:
        raise ValidationError({field: "Use YYYY-MM-DD format."}) from exc


__all__ = [
    "WEEKDAYS",
    "is_valid_time",
    "parse_time",
    "is_valid_timezone",
    "parse_percentage",
    "parse_iso_date",
]
