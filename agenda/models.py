from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

FREQUENCIES = ("once", "weekly", "biweekly", "monthly")

# Occurrence statuses. "scheduled" is also the implicit state of a slot with no row.
STATUS_SCHEDULED = "scheduled"
STATUS_REALIZED = "realized"
STATUS_NO_SHOW = "no-show"
STATUS_CANCELLED = "cancelled"
OCCURRENCE_STATUSES = (STATUS_SCHEDULED, STATUS_REALIZED, STATUS_NO_SHOW, STATUS_CANCELLED)
TERMINAL_STATUSES = (STATUS_REALIZED, STATUS_NO_SHOW, STATUS_CANCELLED)


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    schedules = relationship("Schedule", back_populates="patient")


class PriceCategory(Base):
    __tablename__ = "price_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    description = Column(String(100), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    values = relationship("PriceValue", back_populates="category", order_by="PriceValue.start_date")


class PriceValue(Base):
    """One dated version of a category price; end_date NULL means still current"""

    __tablename__ = "price_values"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("price_categories.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    category = relationship("PriceCategory", back_populates="values")


class Schedule(Base):
    """A recurrence definition: one patient, one weekday/time, one date window"""

    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    frequency = Column(String(20), nullable=False, default="weekly")  # once, weekly, biweekly, monthly
    weekday = Column(Integer, nullable=False)  # 0=Sunday ... 6=Saturday
    time_of_day = Column(String(5), nullable=False)  # HH:MM format
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)  # NULL = open-ended
    fixed_price = Column(Numeric(10, 2), nullable=True)
    price_category_id = Column(Integer, ForeignKey("price_categories.id"), nullable=True)
    active = Column(Boolean, default=True, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="schedules")
    price_category = relationship("PriceCategory")
    occurrences = relationship("Occurrence", back_populates="schedule")


class Occurrence(Base):
    """
    Exception ledger row: how one occurrence deviates from its schedule.

    (schedule_id, scheduled_at) is the natural key. Rows are never deleted.
    """

    __tablename__ = "occurrences"
    __table_args__ = (
        UniqueConstraint("schedule_id", "scheduled_at", name="uq_occurrence_schedule_slot"),
    )

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)

    # Naive clinic-local datetimes
    scheduled_at = Column(DateTime, nullable=False, index=True)
    realized_at = Column(DateTime, nullable=True, index=True)

    charged_amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=STATUS_SCHEDULED)
    charge_on_no_show = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    schedule = relationship("Schedule", back_populates="occurrences")
    moves = relationship(
        "OccurrenceMove",
        back_populates="occurrence",
        order_by="OccurrenceMove.position",
        cascade="all, delete-orphan",
    )

    @property
    def reschedule_history(self) -> list:
        """Prior realized datetimes, oldest first"""
        return [move.moved_from for move in self.moves]

    def record_move(self, moved_from) -> None:
        self.moves.append(OccurrenceMove(position=len(self.moves), moved_from=moved_from))


class OccurrenceMove(Base):
    """Append-only reschedule history of an occurrence"""

    __tablename__ = "occurrence_moves"
    __table_args__ = (
        UniqueConstraint("occurrence_id", "position", name="uq_occurrence_move_position"),
    )

    id = Column(Integer, primary_key=True, index=True)
    occurrence_id = Column(Integer, ForeignKey("occurrences.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    moved_from = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    occurrence = relationship("Occurrence", back_populates="moves")
