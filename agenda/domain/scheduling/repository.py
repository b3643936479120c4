"""Schedule repository - Database operations for schedules and ledger reads"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import STATUS_CANCELLED, Occurrence, Schedule


class ScheduleRepository:
    """Repository for schedule database operations"""

    @staticmethod
    def get_schedules(db: Session, include_inactive: bool = False) -> list[Schedule]:
        query = db.query(Schedule).options(joinedload(Schedule.patient))
        if not include_inactive:
            query = query.filter(Schedule.active.is_(True))
        return query.order_by(Schedule.start_date.desc(), Schedule.id.desc()).all()

    @staticmethod
    def get_schedule_by_id(db: Session, schedule_id: int) -> Optional[Schedule]:
        return db.query(Schedule).filter(Schedule.id == schedule_id).first()

    @staticmethod
    def get_active_schedules(db: Session) -> list[Schedule]:
        return db.query(Schedule).filter(Schedule.active.is_(True)).order_by(Schedule.id).all()

    @staticmethod
    def get_slot_rivals(
        db: Session, weekday: int, time_of_day: str, exclude_id: Optional[int] = None
    ) -> list[Schedule]:
        """Active schedules on the same weekday and time of day"""
        query = db.query(Schedule).filter(
            Schedule.active.is_(True),
            Schedule.weekday == weekday,
            Schedule.time_of_day == time_of_day,
        )
        if exclude_id:
            query = query.filter(Schedule.id != exclude_id)
        return query.with_for_update().all()

    @staticmethod
    def get_freeing_occurrences(db: Session, schedule_ids: Iterable[int]) -> list[Occurrence]:
        """Ledger rows that may release a slot: cancelled or carrying a realized time"""
        ids = [sid for sid in schedule_ids if sid]
        if not ids:
            return []
        return (
            db.query(Occurrence)
            .options(joinedload(Occurrence.schedule))
            .filter(
                Occurrence.schedule_id.in_(ids),
                or_(Occurrence.status == STATUS_CANCELLED, Occurrence.realized_at.isnot(None)),
            )
            .all()
        )

    @staticmethod
    def get_occurrences_in_window(
        db: Session, window_start: datetime, window_end: datetime
    ) -> list[Occurrence]:
        """Ledger rows scheduled or realized in [window_start, window_end)"""
        return (
            db.query(Occurrence)
            .options(joinedload(Occurrence.schedule), selectinload(Occurrence.moves))
            .filter(
                or_(
                    and_(Occurrence.scheduled_at >= window_start, Occurrence.scheduled_at < window_end),
                    and_(Occurrence.realized_at >= window_start, Occurrence.realized_at < window_end),
                )
            )
            .all()
        )

    @staticmethod
    def add_schedule(db: Session, **schedule_data) -> Schedule:
        schedule = Schedule(**schedule_data)
        db.add(schedule)
        db.flush()
        return schedule

    @staticmethod
    def update_schedule(db: Session, schedule: Schedule, **updates) -> Schedule:
        for key, value in updates.items():
            if hasattr(schedule, key):
                setattr(schedule, key, value)
        db.flush()
        return schedule
