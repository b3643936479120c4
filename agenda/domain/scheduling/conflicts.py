"""
Conflict detection between schedules that share a weekday and time of day.

Pure functions over explicit inputs; the service layer loads the candidate
rows and the relevant ledger entries and calls check_conflict inside the
write transaction.
"""

import logging
from typing import Iterable, Optional

from ...errors import ScheduleConflictError
from .ledger import LedgerIndex
from .recurrence import ScheduleRule

logger = logging.getLogger(__name__)

RECURRING = ("weekly", "biweekly", "monthly")


def ranges_overlap(a: ScheduleRule, b: ScheduleRule) -> bool:
    """False only when one window ends strictly before the other begins"""
    if a.end_date is not None and a.end_date < b.start_date:
        return False
    if b.end_date is not None and b.end_date < a.start_date:
        return False
    return True


def _single_lands_on(single: ScheduleRule, recurring: ScheduleRule, ledger: LedgerIndex) -> bool:
    """
    Does the one-off date land on a live occurrence of the recurring schedule?

    An occurrence cancelled or moved away at that slot does not count.
    """
    day = single.start_date
    if not recurring.occurs_on(day):
        return False
    if recurring.id is None:
        return True
    entry = ledger.get((recurring.id, recurring.slot_at(day)))
    return not (entry is not None and entry.frees_slot)


def collides(candidate: ScheduleRule, existing: ScheduleRule, ledger: LedgerIndex) -> bool:
    """Frequency-pair rules for two schedules on the same weekday/time"""
    if not ranges_overlap(candidate, existing):
        return False

    pair = {candidate.frequency, existing.frequency}

    if candidate.frequency == "once" and existing.frequency == "once":
        return candidate.start_date == existing.start_date

    if "once" in pair:
        if candidate.frequency == "once":
            return _single_lands_on(candidate, existing, ledger)
        return _single_lands_on(existing, candidate, ledger)

    if "weekly" in pair:
        return True

    if pair == {"biweekly"}:
        return abs((candidate.start_date - existing.start_date).days) % 14 == 0

    if pair == {"monthly"}:
        return candidate.start_date.day == existing.start_date.day

    # biweekly against monthly: assume the two cycles eventually align
    return True


def find_conflict(
    candidate: ScheduleRule,
    others: Iterable[ScheduleRule],
    ledger: LedgerIndex,
) -> Optional[ScheduleRule]:
    """First active schedule the candidate would collide with, if any"""
    for other in others:
        if candidate.id is not None and other.id == candidate.id:
            continue
        if other.weekday != candidate.weekday or other.time_of_day != candidate.time_of_day:
            continue
        if collides(candidate, other, ledger):
            return other
    return None


def check_conflict(
    candidate: ScheduleRule,
    others: Iterable[ScheduleRule],
    ledger: LedgerIndex,
) -> None:
    """Raise ScheduleConflictError naming the colliding patient"""
    other = find_conflict(candidate, others, ledger)
    if other is not None:
        logger.warning(
            f"⚠️ Schedule conflict: {candidate.frequency} on weekday {candidate.weekday} "
            f"at {candidate.time_label} collides with schedule {other.id} (patient {other.patient_id})"
        )
        raise ScheduleConflictError(other.patient_id, other.id)
