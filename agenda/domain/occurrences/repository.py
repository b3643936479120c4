"""Occurrence repository - Exception ledger reads and locked upserts"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import STATUS_SCHEDULED, Occurrence, Schedule

logger = logging.getLogger(__name__)


class OccurrenceRepository:
    """Repository for exception ledger database operations"""

    @staticmethod
    def get_occurrence(db: Session, schedule_id: int, scheduled_at: datetime) -> Optional[Occurrence]:
        return (
            db.query(Occurrence)
            .filter(Occurrence.schedule_id == schedule_id, Occurrence.scheduled_at == scheduled_at)
            .first()
        )

    @staticmethod
    def lock_occurrence(db: Session, schedule_id: int, scheduled_at: datetime) -> Optional[Occurrence]:
        """Fetch the row for update so concurrent transitions on it serialize"""
        return (
            db.query(Occurrence)
            .filter(Occurrence.schedule_id == schedule_id, Occurrence.scheduled_at == scheduled_at)
            .with_for_update()
            .first()
        )

    @classmethod
    def lock_or_create(cls, db: Session, schedule_id: int, scheduled_at: datetime) -> tuple[Occurrence, bool]:
        """
        Locked row for (schedule_id, scheduled_at), inserting a bare one if absent.

        Must be the first write of the transaction: a concurrent insert of the
        same key trips the unique constraint, the transaction is rolled back
        and the winner's row is locked instead.
        """
        occurrence = cls.lock_occurrence(db, schedule_id, scheduled_at)
        if occurrence:
            return occurrence, False

        occurrence = Occurrence(
            schedule_id=schedule_id,
            scheduled_at=scheduled_at,
            status=STATUS_SCHEDULED,
            charge_on_no_show=False,
        )
        db.add(occurrence)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info(
                f"🔁 Occurrence ({schedule_id}, {scheduled_at.isoformat()}) created concurrently, reloading"
            )
            occurrence = cls.lock_occurrence(db, schedule_id, scheduled_at)
            if occurrence is None:
                return cls.lock_or_create(db, schedule_id, scheduled_at)
            return occurrence, False
        return occurrence, True

    @staticmethod
    def get_by_patient(db: Session, patient_id: int) -> list[Occurrence]:
        return (
            db.query(Occurrence)
            .join(Schedule, Occurrence.schedule_id == Schedule.id)
            .options(joinedload(Occurrence.schedule), selectinload(Occurrence.moves))
            .filter(Schedule.patient_id == patient_id)
            .order_by(Occurrence.scheduled_at.desc())
            .all()
        )
