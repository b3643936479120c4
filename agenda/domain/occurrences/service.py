"""
Occurrence state machine.

scheduled (implicit, no row) -> realized | no-show | cancelled, or back to
scheduled at a new time via reschedule. Every operation upserts the ledger row
keyed by (schedule_id, original slot) and snapshots the price of the original
slot date.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import InvalidTransitionError, OccurrenceNotFoundError
from ...models import (
    STATUS_CANCELLED,
    STATUS_NO_SHOW,
    STATUS_REALIZED,
    STATUS_SCHEDULED,
    TERMINAL_STATUSES,
    Occurrence,
)
from ...shared.validators import to_clinic_time
from ..pricing.service import PricingResolver
from .repository import OccurrenceRepository

logger = logging.getLogger(__name__)


class OccurrenceService:
    """Service layer for occurrence transitions"""

    def __init__(self, db: Session, pricing: Optional[PricingResolver] = None):
        self.db = db
        self.repo = OccurrenceRepository()
        self.pricing = pricing or PricingResolver(db)

    def confirm(
        self, schedule_id: int, original_at: datetime, realized_at: Optional[datetime] = None
    ) -> Occurrence:
        """
        Mark the occurrence realized. Re-confirming re-snapshots the price but
        keeps the realized time already recorded. Without an explicit time the
        occurrence is realized at its original slot.
        """
        original_at = to_clinic_time(original_at)

        def apply(occurrence: Occurrence, price, created: bool):
            if occurrence.status != STATUS_REALIZED:
                occurrence.realized_at = to_clinic_time(realized_at) if realized_at else original_at
            occurrence.status = STATUS_REALIZED
            occurrence.charged_amount = price
            occurrence.charge_on_no_show = False

        return self._transition(schedule_id, original_at, "confirmed", apply)

    def reschedule(self, schedule_id: int, original_at: datetime, new_at: datetime) -> Occurrence:
        """Move the occurrence; a previous move is kept in its history"""
        original_at = to_clinic_time(original_at)
        new_at = to_clinic_time(new_at)

        def apply(occurrence: Occurrence, price, created: bool):
            if occurrence.status in TERMINAL_STATUSES:
                raise InvalidTransitionError(occurrence.status, "rescheduled")
            if occurrence.realized_at is not None and occurrence.realized_at != new_at:
                occurrence.record_move(occurrence.realized_at)
            occurrence.realized_at = new_at
            occurrence.status = STATUS_SCHEDULED
            # Price follows the date the slot was booked for, not where it moved
            occurrence.charged_amount = price

        return self._transition(schedule_id, original_at, "rescheduled", apply)

    def register_no_show(self, schedule_id: int, original_at: datetime, charge: bool = False) -> Occurrence:
        original_at = to_clinic_time(original_at)

        def apply(occurrence: Occurrence, price, created: bool):
            self._guard_terminal(occurrence, STATUS_NO_SHOW, "marked as no-show")
            occurrence.status = STATUS_NO_SHOW
            occurrence.realized_at = None
            occurrence.charged_amount = price
            occurrence.charge_on_no_show = charge

        return self._transition(schedule_id, original_at, "marked no-show", apply)

    def cancel(self, schedule_id: int, original_at: datetime) -> Occurrence:
        original_at = to_clinic_time(original_at)

        def apply(occurrence: Occurrence, price, created: bool):
            self._guard_terminal(occurrence, STATUS_CANCELLED, "cancelled")
            occurrence.status = STATUS_CANCELLED
            occurrence.realized_at = None
            # Kept for audit; cancelled occurrences are never billed
            occurrence.charged_amount = price
            occurrence.charge_on_no_show = False

        return self._transition(schedule_id, original_at, "cancelled", apply)

    def update_notes(self, schedule_id: int, original_at: datetime, notes: str) -> Occurrence:
        """Attach notes without changing the occurrence's status"""
        original_at = to_clinic_time(original_at)

        def apply(occurrence: Occurrence, price, created: bool):
            if created:
                occurrence.charged_amount = price
            occurrence.notes = notes

        return self._transition(schedule_id, original_at, "annotated", apply)

    def get(self, schedule_id: int, original_at: datetime) -> Occurrence:
        original_at = to_clinic_time(original_at)
        occurrence = self.repo.get_occurrence(self.db, schedule_id, original_at)
        if not occurrence:
            raise OccurrenceNotFoundError(schedule_id, original_at)
        return occurrence

    def list_for_patient(self, patient_id: int) -> list[Occurrence]:
        return self.repo.get_by_patient(self.db, patient_id)

    @staticmethod
    def _guard_terminal(occurrence: Occurrence, target: str, action: str) -> None:
        """Terminal rows only accept a repeat of the same transition"""
        if occurrence.status in TERMINAL_STATUSES and occurrence.status != target:
            raise InvalidTransitionError(occurrence.status, action)

    def _transition(self, schedule_id: int, original_at: datetime, action: str, apply) -> Occurrence:
        """Lock-or-create the ledger row, apply the change, commit; nothing persists on error"""
        try:
            price = self.pricing.price_for(schedule_id, original_at)
            occurrence, created = self.repo.lock_or_create(self.db, schedule_id, original_at)
            apply(occurrence, price, created)
            self.db.commit()
        except InvalidTransitionError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Schedule {schedule_id} at {original_at.isoformat()}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(occurrence)
        logger.info(
            f"✅ Occurrence {occurrence.id} (schedule {schedule_id}, {original_at.isoformat()}) "
            f"{action}: status={occurrence.status}"
        )
        return occurrence
