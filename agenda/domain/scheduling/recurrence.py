"""
Recurrence rules and the "does date D match schedule S" predicate.

Both the calendar materializer and the conflict detector go through
ScheduleRule.occurs_on, so a slot the calendar shows is exactly a slot the
conflict detector protects.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional, Union

from ...errors import ValidationError
from ...models import FREQUENCIES
from ...shared.validators import normalize_time_of_day, validate_date_range


def sunday_weekday(day: date) -> int:
    """Weekday numbered 0=Sunday .. 6=Saturday"""
    return day.isoweekday() % 7


@dataclass(frozen=True)
class Once:
    on: date

    def matches(self, day: date) -> bool:
        return day == self.on


@dataclass(frozen=True)
class Weekly:
    weekday: int

    def matches(self, day: date) -> bool:
        return sunday_weekday(day) == self.weekday


@dataclass(frozen=True)
class Biweekly:
    anchor: date

    def matches(self, day: date) -> bool:
        return (day - self.anchor).days % 14 == 0


@dataclass(frozen=True)
class Monthly:
    # Anchor days 29-31 produce no occurrence in shorter months
    day_of_month: int

    def matches(self, day: date) -> bool:
        return day.day == self.day_of_month


Recurrence = Union[Once, Weekly, Biweekly, Monthly]


def build_recurrence(frequency: str, start_date: date, weekday: int) -> Recurrence:
    if frequency == "once":
        return Once(start_date)
    if frequency == "weekly":
        return Weekly(weekday)
    if frequency == "biweekly":
        return Biweekly(start_date)
    if frequency == "monthly":
        return Monthly(start_date.day)
    raise ValidationError(f"Unknown frequency: {frequency!r}")


def resolve_weekday(frequency: str, start_date: date, weekday: Optional[int]) -> int:
    """
    Derive the weekday from the start date when absent.

    For weekly schedules the weekday is authoritative and must agree with the
    start date.
    """
    derived = sunday_weekday(start_date)
    if weekday is None:
        return derived
    if not 0 <= weekday <= 6:
        raise ValidationError(f"Weekday must be between 0 (Sunday) and 6 (Saturday), got {weekday}")
    if frequency == "weekly" and weekday != derived:
        raise ValidationError(
            f"Weekday {weekday} does not match start date {start_date.isoformat()} (weekday {derived})"
        )
    return weekday


@dataclass(frozen=True)
class ScheduleRule:
    """Validated, storage-independent view of a schedule row"""

    id: Optional[int]
    patient_id: int
    frequency: str
    weekday: int
    time_of_day: time
    start_date: date
    end_date: Optional[date] = None

    @classmethod
    def build(
        cls,
        *,
        patient_id: int,
        frequency: str,
        time_of_day: str,
        start_date: date,
        end_date: Optional[date] = None,
        weekday: Optional[int] = None,
        id: Optional[int] = None,
    ) -> "ScheduleRule":
        if frequency not in FREQUENCIES:
            raise ValidationError(f"Frequency must be one of {', '.join(FREQUENCIES)}")
        if frequency == "once" and end_date is None:
            end_date = start_date
        validate_date_range(start_date, end_date)
        hours, minutes = normalize_time_of_day(time_of_day).split(":")
        return cls(
            id=id,
            patient_id=patient_id,
            frequency=frequency,
            weekday=resolve_weekday(frequency, start_date, weekday),
            time_of_day=time(int(hours), int(minutes)),
            start_date=start_date,
            end_date=end_date,
        )

    @classmethod
    def from_model(cls, schedule) -> "ScheduleRule":
        return cls.build(
            id=schedule.id,
            patient_id=schedule.patient_id,
            frequency=schedule.frequency,
            time_of_day=schedule.time_of_day,
            start_date=schedule.start_date,
            end_date=schedule.end_date,
            weekday=schedule.weekday,
        )

    @property
    def recurrence(self) -> Recurrence:
        return build_recurrence(self.frequency, self.start_date, self.weekday)

    @property
    def time_label(self) -> str:
        return self.time_of_day.strftime("%H:%M")

    def covers(self, day: date) -> bool:
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date

    def occurs_on(self, day: date) -> bool:
        return self.covers(day) and self.recurrence.matches(day)

    def slot_at(self, day: date) -> datetime:
        """Naive clinic-local slot datetime for the given date"""
        return datetime.combine(day, self.time_of_day)

    def occurrence_dates(self, start: date, end: date) -> Iterator[date]:
        """Matching dates between start and end, both inclusive"""
        if self.end_date is not None and self.end_date < start:
            return
        day = max(start, self.start_date)
        last = end if self.end_date is None else min(end, self.end_date)
        recurrence = self.recurrence
        while day <= last:
            if recurrence.matches(day):
                yield day
            day += timedelta(days=1)


def first_match_on_or_after(recurrence: Recurrence, day: date, horizon_days: int = 62) -> Optional[date]:
    """First date from day onwards the recurrence matches, within the horizon"""
    for offset in range(horizon_days + 1):
        candidate = day + timedelta(days=offset)
        if recurrence.matches(candidate):
            return candidate
    return None
