"""Scheduling services - Schedule store and calendar materialization"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import MATERIALIZER_MAX_RANGE_DAYS
from ...database import lock_slot
from ...errors import ScheduleNotFoundError, ValidationError
from ...models import Schedule
from ..patients.repository import PatientDirectory
from .conflicts import check_conflict
from .ledger import LedgerEntry, index_ledger
from .materializer import generate_calendar
from .recurrence import Biweekly, Monthly, ScheduleRule, Weekly, first_match_on_or_after
from .repository import ScheduleRepository
from .schemas import ScheduleCreate, ScheduleUpdate

logger = logging.getLogger(__name__)

# API field -> column
FIELD_MAP = {
    "patientId": "patient_id",
    "frequency": "frequency",
    "weekday": "weekday",
    "timeOfDay": "time_of_day",
    "startDate": "start_date",
    "endDate": "end_date",
    "fixedPrice": "fixed_price",
    "priceCategoryId": "price_category_id",
    "notes": "notes",
}

RULE_FIELDS = ("patient_id", "frequency", "weekday", "time_of_day", "start_date", "end_date")


class ScheduleService:
    """Schedule store: validated CRUD with conflict detection on every write"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()
        self.patients = PatientDirectory(db)

    def list_schedules(self, include_inactive: bool = False) -> list[Schedule]:
        return self.repo.get_schedules(self.db, include_inactive)

    def get_schedule(self, schedule_id: int) -> Schedule:
        schedule = self.repo.get_schedule_by_id(self.db, schedule_id)
        if not schedule:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    def create_schedule(self, data: ScheduleCreate) -> Schedule:
        """Create a schedule after conflict detection, in one transaction"""
        logger.info(f"📥 Creating {data.frequency} schedule for patient_id: {data.patientId}")
        values = {FIELD_MAP[k]: v for k, v in data.model_dump().items()}
        try:
            schedule = self._insert(values)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(schedule)
        logger.info(f"✅ Schedule {schedule.id} created")
        return schedule

    def update_schedule(
        self,
        schedule_id: int,
        data: ScheduleUpdate,
        mode: str = "overwrite",
        cutoff: Optional[date] = None,
    ) -> Schedule:
        """
        Update a schedule.

        overwrite: mutate in place, re-validated against conflicts excluding itself.
        history: close the existing row the day before the cutoff (default today)
        and create a new row starting at the cutoff.
        """
        if mode not in ("overwrite", "history"):
            raise ValidationError(f"Unknown update mode: {mode!r}")

        updates = {FIELD_MAP[k]: v for k, v in data.model_dump(exclude_unset=True).items()}
        try:
            existing = self.get_schedule(schedule_id)
            if mode == "history":
                schedule = self._split(existing, updates, cutoff or date.today())
            else:
                schedule = self._overwrite(existing, updates)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(schedule)
        logger.info(f"✅ Schedule {schedule_id} updated ({mode}) -> schedule {schedule.id}")
        return schedule

    def terminate_schedule(self, schedule_id: int, end_date: date) -> Schedule:
        """End the recurrence on end_date; the row stays as history"""
        try:
            schedule = self.get_schedule(schedule_id)
            if end_date < schedule.start_date:
                raise ValidationError(
                    f"End date {end_date.isoformat()} is before start date {schedule.start_date.isoformat()}"
                )
            if schedule.active and (schedule.end_date is None or end_date > schedule.end_date):
                # A later end claims slots again, so it is checked like a write
                fields = {k: getattr(schedule, k) for k in RULE_FIELDS}
                fields["end_date"] = end_date
                self._check_conflicts(ScheduleRule.build(id=schedule.id, **fields))
            self.repo.update_schedule(self.db, schedule, end_date=end_date)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(schedule)
        logger.info(f"🛑 Schedule {schedule_id} terminated on {end_date.isoformat()}")
        return schedule

    def soft_delete_schedule(self, schedule_id: int) -> Schedule:
        try:
            schedule = self.get_schedule(schedule_id)
            self.repo.update_schedule(self.db, schedule, active=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(schedule)
        logger.info(f"🗑️ Schedule {schedule_id} deactivated")
        return schedule

    def delete_schedule(self, schedule_id: int, mode: str = "history") -> Schedule:
        """
        history: terminate today, keeping past occurrences on the calendar.
        everything: soft-delete. A schedule that has not started yet is
        soft-deleted in either mode.
        """
        if mode not in ("history", "everything"):
            raise ValidationError(f"Unknown delete mode: {mode!r}")
        schedule = self.get_schedule(schedule_id)
        today = date.today()
        if mode == "everything" or schedule.start_date > today:
            return self.soft_delete_schedule(schedule_id)
        return self.terminate_schedule(schedule_id, today)

    def _insert(self, values: dict) -> Schedule:
        if not self.patients.exists(values["patient_id"]):
            raise ValidationError(f"Patient {values['patient_id']} not found")
        if values.get("fixed_price") is not None and values.get("price_category_id") is not None:
            raise ValidationError("Set either a fixed price or a price category, not both")

        rule = ScheduleRule.build(**{k: values.get(k) for k in RULE_FIELDS})
        self._check_conflicts(rule)

        values.update(
            weekday=rule.weekday,
            end_date=rule.end_date,
            time_of_day=rule.time_label,
            active=True,
        )
        return self.repo.add_schedule(self.db, **values)

    def _overwrite(self, existing: Schedule, updates: dict) -> Schedule:
        if "patient_id" in updates and not self.patients.exists(updates["patient_id"]):
            raise ValidationError(f"Patient {updates['patient_id']} not found")

        merged = {k: getattr(existing, k) for k in RULE_FIELDS}
        merged.update({k: v for k, v in updates.items() if k in RULE_FIELDS})
        if "start_date" in updates and "weekday" not in updates:
            merged["weekday"] = None  # re-derive from the new start date
        if merged["frequency"] == "once" and "end_date" not in updates:
            merged["end_date"] = None  # once collapses to its start date

        rule = ScheduleRule.build(id=existing.id, **merged)
        if existing.active:
            self._check_conflicts(rule)

        fixed_price = updates.get("fixed_price", existing.fixed_price)
        category_id = updates.get("price_category_id", existing.price_category_id)
        if fixed_price is not None and category_id is not None:
            raise ValidationError("Set either a fixed price or a price category, not both")

        updates.update(weekday=rule.weekday, end_date=rule.end_date, time_of_day=rule.time_label)
        return self.repo.update_schedule(self.db, existing, **updates)

    def _split(self, existing: Schedule, updates: dict, cutoff: date) -> Schedule:
        if cutoff <= existing.start_date:
            raise ValidationError(
                f"Cutoff {cutoff.isoformat()} must be after the schedule start "
                f"{existing.start_date.isoformat()}; use overwrite instead"
            )
        if existing.end_date is not None and cutoff > existing.end_date:
            raise ValidationError(
                f"Cutoff {cutoff.isoformat()} is after the schedule end "
                f"{existing.end_date.isoformat()}; an ended schedule cannot be reopened"
            )

        previous_end = existing.end_date
        # The old row keeps its history up to the day before the cutoff
        self.repo.update_schedule(self.db, existing, end_date=cutoff - timedelta(days=1))

        values = {
            "patient_id": existing.patient_id,
            "frequency": existing.frequency or "weekly",
            "time_of_day": existing.time_of_day,
            "fixed_price": existing.fixed_price,
            "price_category_id": existing.price_category_id,
            "notes": existing.notes,
        }
        values.update({k: v for k, v in updates.items() if k not in ("start_date", "end_date")})

        start_date = self._history_start(existing, values, updates, cutoff)
        end_date = updates.get("end_date", previous_end)
        if end_date is not None and end_date < start_date:
            end_date = None

        if values["frequency"] in ("weekly", "biweekly"):
            values["weekday"] = None  # the aligned start date carries the weekday
        else:
            values.setdefault("weekday", None)
        values.update(start_date=start_date, end_date=end_date)
        return self._insert(values)

    @staticmethod
    def _history_start(existing: Schedule, values: dict, updates: dict, cutoff: date) -> date:
        """
        Start date of the row that continues a schedule from the cutoff.

        Unchanged cadences keep their phase: a weekly row keeps its weekday, a
        biweekly row its fortnight, a monthly row its day of month.
        """
        frequency = values["frequency"]
        weekday = updates.get("weekday", existing.weekday)
        if frequency == "once":
            return cutoff
        if frequency == "biweekly" and existing.frequency == "biweekly" and "weekday" not in updates:
            recurrence = Biweekly(existing.start_date)
        elif frequency == "monthly":
            if existing.frequency != "monthly":
                return cutoff
            recurrence = Monthly(existing.start_date.day)
        else:
            recurrence = Weekly(weekday)
        return first_match_on_or_after(recurrence, cutoff) or cutoff

    def _check_conflicts(self, rule: ScheduleRule) -> None:
        lock_slot(self.db, rule.weekday, rule.time_label)
        rivals = self.repo.get_slot_rivals(self.db, rule.weekday, rule.time_label, rule.id)

        others = []
        for rival in rivals:
            try:
                others.append(ScheduleRule.from_model(rival))
            except ValidationError as e:
                logger.warning(f"⚠️ Ignoring malformed schedule {rival.id} in conflict check: {e}")

        ledger = index_ledger(
            LedgerEntry.from_model(o)
            for o in self.repo.get_freeing_occurrences(
                self.db, [o.id for o in others] + [rule.id]
            )
        )
        check_conflict(rule, others, ledger)


class CalendarService:
    """Materializer entry point: loads schedules and ledger, expands the range"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()
        self.patients = PatientDirectory(db)

    def generate_calendar(self, start: date, end: date):
        if isinstance(start, datetime):
            start = start.date()
        if isinstance(end, datetime):
            end = end.date()
        if end < start:
            raise ValidationError(f"End date {end.isoformat()} is before start date {start.isoformat()}")
        if (end - start).days > MATERIALIZER_MAX_RANGE_DAYS:
            raise ValidationError(f"Calendar range may not exceed {MATERIALIZER_MAX_RANGE_DAYS} days")

        rules = []
        for schedule in self.repo.get_active_schedules(self.db):
            try:
                rules.append(ScheduleRule.from_model(schedule))
            except ValidationError as e:
                logger.warning(f"⚠️ Skipping malformed schedule {schedule.id}: {e}")

        window_start = datetime.combine(start, datetime.min.time())
        window_end = datetime.combine(end + timedelta(days=1), datetime.min.time())
        entries = []
        for occurrence in self.repo.get_occurrences_in_window(self.db, window_start, window_end):
            try:
                entries.append(LedgerEntry.from_model(occurrence))
            except (TypeError, ValueError) as e:
                logger.warning(f"⚠️ Skipping malformed occurrence {occurrence.id}: {e}")

        patient_ids = {r.patient_id for r in rules} | {e.patient_id for e in entries}
        patients = self.patients.get_many(patient_ids)

        events = generate_calendar(rules, entries, start, end, patients)
        logger.info(
            f"📅 Calendar {start.isoformat()}..{end.isoformat()}: "
            f"{len(events)} events from {len(rules)} schedules"
        )
        return events
