"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...shared.validators import localize, normalize_time_of_day

Frequency = Literal["once", "weekly", "biweekly", "monthly"]


def _time_of_day(v):
    if v is None:
        return v
    try:
        return normalize_time_of_day(v)
    except Exception as e:
        raise ValueError(str(e))


class ScheduleCreate(BaseModel):
    """Schema for creating a new schedule"""

    patientId: int
    frequency: Frequency = "weekly"
    weekday: Optional[int] = Field(None, ge=0, le=6, description="0=Sunday .. 6=Saturday")
    timeOfDay: str = Field(..., description="Time of day in HH:MM")
    startDate: date
    endDate: Optional[date] = None
    fixedPrice: Optional[Decimal] = Field(None, ge=0)
    priceCategoryId: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("timeOfDay")
    @classmethod
    def validate_time_of_day(cls, v):
        return _time_of_day(v)

    @model_validator(mode="after")
    def validate_pricing(self):
        if self.fixedPrice is not None and self.priceCategoryId is not None:
            raise ValueError("Set either a fixed price or a price category, not both")
        return self


class ScheduleUpdate(BaseModel):
    """Schema for updating a schedule; omitted fields keep their stored value"""

    patientId: Optional[int] = None
    frequency: Optional[Frequency] = None
    weekday: Optional[int] = Field(None, ge=0, le=6)
    timeOfDay: Optional[str] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    fixedPrice: Optional[Decimal] = Field(None, ge=0)
    priceCategoryId: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("timeOfDay")
    @classmethod
    def validate_time_of_day(cls, v):
        return _time_of_day(v)


class TerminateRequest(BaseModel):
    endDate: date


class ScheduleResponse(BaseModel):
    """Schema for schedule response"""

    id: int
    patientId: int
    patientName: Optional[str] = None
    frequency: str
    weekday: int
    timeOfDay: str
    startDate: date
    endDate: Optional[date]
    fixedPrice: Optional[Decimal]
    priceCategoryId: Optional[int]
    active: bool
    notes: Optional[str]
    createdAt: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, s) -> "ScheduleResponse":
        return cls(
            id=s.id,
            patientId=s.patient_id,
            patientName=s.patient.full_name if s.patient else None,
            frequency=s.frequency,
            weekday=s.weekday,
            timeOfDay=s.time_of_day,
            startDate=s.start_date,
            endDate=s.end_date,
            fixedPrice=s.fixed_price,
            priceCategoryId=s.price_category_id,
            active=bool(s.active),
            notes=s.notes,
            createdAt=s.created_at,
        )


class CalendarEventResponse(BaseModel):
    """One row of the materialized calendar; datetimes carry the clinic offset"""

    date: datetime
    originalDate: datetime
    newDate: Optional[datetime] = None
    type: str
    status: str
    scheduleId: int
    occurrenceId: Optional[int] = None
    patientId: Optional[int] = None
    patientName: str
    patientEmail: str = ""
    freeable: bool = False

    @classmethod
    def from_event(cls, e) -> "CalendarEventResponse":
        return cls(
            date=localize(e.display_at),
            originalDate=localize(e.original_at),
            newDate=localize(e.moved_to),
            type=e.kind,
            status=e.status,
            scheduleId=e.schedule_id,
            occurrenceId=e.occurrence_id,
            patientId=e.patient_id,
            patientName=e.patient_name,
            patientEmail=e.patient_email,
            freeable=e.is_freeable,
        )
