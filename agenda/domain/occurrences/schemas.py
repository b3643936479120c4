"""Occurrence domain schemas - Pydantic models for state transitions"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...shared.validators import localize


class OccurrenceRef(BaseModel):
    """Identifies one occurrence by its schedule and original slot"""

    scheduleId: int
    originalDate: datetime = Field(..., description="The occurrence's original slot")


class ConfirmRequest(OccurrenceRef):
    realizationDate: Optional[datetime] = None


class RescheduleRequest(OccurrenceRef):
    newDate: datetime


class NoShowRequest(OccurrenceRef):
    charge: bool = False


class CancelRequest(OccurrenceRef):
    pass


class NotesRequest(OccurrenceRef):
    notes: str


class OccurrenceResponse(BaseModel):
    """Schema for exception ledger row response"""

    id: int
    scheduleId: int
    patientId: Optional[int] = None
    originalDate: datetime
    realizationDate: Optional[datetime]
    chargedAmount: Decimal
    status: str
    chargeOnNoShow: bool
    rescheduleHistory: List[datetime] = []
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, o) -> "OccurrenceResponse":
        return cls(
            id=o.id,
            scheduleId=o.schedule_id,
            patientId=o.schedule.patient_id if o.schedule else None,
            originalDate=localize(o.scheduled_at),
            realizationDate=localize(o.realized_at),
            chargedAmount=o.charged_amount,
            status=o.status,
            chargeOnNoShow=bool(o.charge_on_no_show),
            rescheduleHistory=[localize(m) for m in o.reschedule_history],
            notes=o.notes,
        )
