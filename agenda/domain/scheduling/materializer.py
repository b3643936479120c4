"""
Calendar materialization.

Expands schedules plus the exception ledger into the list of calendar events
for an inclusive date range. Everything here is a pure function over explicit
inputs; CalendarService does the loading.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Mapping, Optional, Sequence

from ...models import STATUS_CANCELLED, STATUS_SCHEDULED
from .ledger import LedgerEntry, index_ledger
from .recurrence import ScheduleRule

logger = logging.getLogger(__name__)

KIND_VIRTUAL_SLOT = "virtual-slot"
KIND_OCCURRENCE = "occurrence"

STATUS_AVAILABLE = "available"
STATUS_RESCHEDULED_ORIGIN = "rescheduled-origin"

UNKNOWN_PATIENT = {"name": "Unknown patient", "email": ""}


@dataclass(frozen=True)
class CalendarEvent:
    display_at: datetime
    original_at: datetime
    kind: str
    status: str
    schedule_id: int
    patient_id: Optional[int]
    patient_name: str = UNKNOWN_PATIENT["name"]
    patient_email: str = ""
    moved_to: Optional[datetime] = None
    occurrence_id: Optional[int] = None

    @property
    def is_ghost(self) -> bool:
        return self.status == STATUS_RESCHEDULED_ORIGIN

    @property
    def is_freeable(self) -> bool:
        """The slot at display_at is open for another booking"""
        return self.is_ghost or self.status == STATUS_CANCELLED


def _patient_fields(patients: Mapping[int, dict], patient_id: Optional[int]) -> dict:
    patient = patients.get(patient_id) if patient_id is not None else None
    if not patient:
        return {"patient_name": UNKNOWN_PATIENT["name"], "patient_email": ""}
    return {
        "patient_name": patient.get("name") or UNKNOWN_PATIENT["name"],
        "patient_email": patient.get("email") or "",
    }


def virtual_slot(rule: ScheduleRule, slot: datetime, patients: Mapping[int, dict]) -> CalendarEvent:
    return CalendarEvent(
        display_at=slot,
        original_at=slot,
        kind=KIND_VIRTUAL_SLOT,
        status=STATUS_AVAILABLE,
        schedule_id=rule.id,
        patient_id=rule.patient_id,
        **_patient_fields(patients, rule.patient_id),
    )


def project_occurrence(
    entry: LedgerEntry,
    patients: Mapping[int, dict],
    patient_id: Optional[int] = None,
) -> List[CalendarEvent]:
    """
    Events for one ledger entry matched to a generated slot.

    A moved occurrence yields a ghost at its original slot, one ghost per
    intermediate location in its history, and the occurrence itself at its
    current location. Anything else yields a single event at the slot.
    """
    if patient_id is None:
        patient_id = entry.patient_id
    common = dict(
        schedule_id=entry.schedule_id,
        patient_id=patient_id,
        occurrence_id=entry.id,
        **_patient_fields(patients, patient_id),
    )
    status = entry.status or STATUS_SCHEDULED

    if not entry.is_moved:
        return [
            CalendarEvent(
                display_at=entry.realized_at or entry.scheduled_at,
                original_at=entry.scheduled_at,
                kind=KIND_OCCURRENCE,
                status=status,
                **common,
            )
        ]

    events = [
        CalendarEvent(
            display_at=entry.scheduled_at,
            original_at=entry.scheduled_at,
            moved_to=entry.realized_at,
            kind=KIND_OCCURRENCE,
            status=STATUS_RESCHEDULED_ORIGIN,
            **common,
        )
    ]
    for previous in entry.reschedule_history:
        events.append(
            CalendarEvent(
                display_at=previous,
                original_at=entry.scheduled_at,
                moved_to=entry.realized_at,
                kind=KIND_OCCURRENCE,
                status=STATUS_RESCHEDULED_ORIGIN,
                **common,
            )
        )
    events.append(
        CalendarEvent(
            display_at=entry.realized_at,
            original_at=entry.scheduled_at,
            kind=KIND_OCCURRENCE,
            status=status,
            **common,
        )
    )
    return events


def project_unmatched(entry: LedgerEntry, patients: Mapping[int, dict]) -> CalendarEvent:
    """A ledger entry whose slot the schedules no longer generate"""
    return CalendarEvent(
        display_at=entry.realized_at or entry.scheduled_at,
        original_at=entry.scheduled_at,
        kind=KIND_OCCURRENCE,
        status=entry.status or STATUS_SCHEDULED,
        schedule_id=entry.schedule_id,
        patient_id=entry.patient_id,
        occurrence_id=entry.id,
        **_patient_fields(patients, entry.patient_id),
    )


def display_priority(event: CalendarEvent) -> int:
    """virtual-slot (0) < rescheduled-origin ghost (1) < any other occurrence (2)"""
    if event.kind == KIND_VIRTUAL_SLOT:
        return 0
    if event.is_ghost:
        return 1
    return 2


def half_hour_bucket(moment: datetime) -> tuple:
    return moment.date(), moment.hour, 0 if moment.minute < 30 else 30


def display_event(
    events: Iterable[CalendarEvent], day: date, hour: int, minute: int
) -> Optional[CalendarEvent]:
    """The event shown in a day + half-hour bucket; the others stay subordinate"""
    bucket = (day, hour, 0 if minute < 30 else 30)
    shown = None
    for event in events:
        if half_hour_bucket(event.display_at) != bucket:
            continue
        if shown is None or display_priority(event) > display_priority(shown):
            shown = event
    return shown


def _in_window(moment: Optional[datetime], window_start: datetime, window_end: datetime) -> bool:
    return moment is not None and window_start <= moment < window_end


def generate_calendar(
    rules: Sequence[ScheduleRule],
    entries: Iterable[LedgerEntry],
    start: date,
    end: date,
    patients: Optional[Mapping[int, dict]] = None,
) -> List[CalendarEvent]:
    """
    Expand schedules and ledger entries into calendar events, start..end inclusive.

    Ledger entries not matched to any generated slot but scheduled or realized
    inside the window are still emitted, so no recorded state is dropped.
    """
    patients = patients or {}
    entries = list(entries)
    ledger = index_ledger(entries)
    matched = set()
    events: List[CalendarEvent] = []

    for rule in rules:
        produced: List[CalendarEvent] = []
        claimed = set()
        try:
            for day in rule.occurrence_dates(start, end):
                slot = rule.slot_at(day)
                entry = ledger.get((rule.id, slot))
                if entry is None:
                    produced.append(virtual_slot(rule, slot, patients))
                    continue
                claimed.add((rule.id, slot))
                produced.extend(project_occurrence(entry, patients, rule.patient_id))
        except (ValueError, TypeError) as e:
            logger.warning(f"⚠️ Skipping schedule {rule.id} during materialization: {e}")
            continue
        events.extend(produced)
        matched.update(claimed)

    window_start = datetime.combine(start, datetime.min.time())
    window_end = datetime.combine(end + timedelta(days=1), datetime.min.time())
    for entry in entries:
        if (entry.schedule_id, entry.scheduled_at) in matched:
            continue
        if _in_window(entry.scheduled_at, window_start, window_end) or _in_window(
            entry.realized_at, window_start, window_end
        ):
            events.append(project_unmatched(entry, patients))

    events.sort(key=lambda e: (e.display_at, display_priority(e), e.schedule_id or 0))
    return events
