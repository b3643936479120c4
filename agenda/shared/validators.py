"""Shared validation utilities"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from ..config import SLOT_UTC_OFFSET_HOURS
from ..errors import ValidationError

TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def clinic_timezone(offset_hours: Optional[float] = None) -> timezone:
    """Fixed-offset timezone of the clinic's wall clock"""
    if offset_hours is None:
        offset_hours = SLOT_UTC_OFFSET_HOURS
    return timezone(timedelta(hours=offset_hours))


def normalize_time_of_day(value: Optional[str]) -> str:
    """
    Validate and normalize a time of day to HH:MM.

    Accepts "9:00", "09:00" and "09:00:00".

    Raises:
        ValidationError: If the value is empty or not a valid time
    """
    if not value:
        raise ValidationError("Time of day is required")

    match = TIME_OF_DAY_PATTERN.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid time of day: {value!r} (expected HH:MM)")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time of day: {value!r}")

    return f"{hours:02d}:{minutes:02d}"


def to_clinic_time(value: datetime, offset_hours: Optional[float] = None) -> datetime:
    """
    Convert a datetime to naive clinic-local time, truncated to the minute.

    Naive inputs are assumed to already be clinic-local.
    """
    if value.tzinfo is not None:
        value = value.astimezone(clinic_timezone(offset_hours)).replace(tzinfo=None)
    return value.replace(second=0, microsecond=0)


def localize(value: Optional[datetime], offset_hours: Optional[float] = None) -> Optional[datetime]:
    """Attach the clinic offset to a naive clinic-local datetime"""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value
    return value.replace(tzinfo=clinic_timezone(offset_hours))


def validate_date_range(start: date, end: Optional[date]) -> None:
    """An end date, if present, may not precede the start date"""
    if end is not None and end < start:
        raise ValidationError(f"End date {end.isoformat()} is before start date {start.isoformat()}")
