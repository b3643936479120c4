"""Storage-independent view of exception ledger rows"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional, Tuple

from ...models import STATUS_CANCELLED, STATUS_SCHEDULED


@dataclass(frozen=True)
class LedgerEntry:
    schedule_id: int
    scheduled_at: datetime
    status: str = STATUS_SCHEDULED
    realized_at: Optional[datetime] = None
    reschedule_history: Tuple[datetime, ...] = ()
    id: Optional[int] = None
    patient_id: Optional[int] = None
    charged_amount: Decimal = Decimal("0")
    charge_on_no_show: bool = False
    notes: Optional[str] = None

    @classmethod
    def from_model(cls, occurrence) -> "LedgerEntry":
        schedule = occurrence.schedule
        return cls(
            id=occurrence.id,
            schedule_id=occurrence.schedule_id,
            patient_id=schedule.patient_id if schedule is not None else None,
            scheduled_at=occurrence.scheduled_at,
            realized_at=occurrence.realized_at,
            status=occurrence.status,
            reschedule_history=tuple(occurrence.reschedule_history),
            charged_amount=occurrence.charged_amount,
            charge_on_no_show=occurrence.charge_on_no_show,
            notes=occurrence.notes,
        )

    @property
    def is_moved(self) -> bool:
        return self.realized_at is not None and self.realized_at != self.scheduled_at

    @property
    def frees_slot(self) -> bool:
        """A cancelled or moved-away occurrence no longer claims its slot"""
        return self.status == STATUS_CANCELLED or self.is_moved


LedgerIndex = Mapping[Tuple[int, datetime], LedgerEntry]


def index_ledger(entries) -> dict:
    """Key entries by their natural key (schedule_id, scheduled_at)"""
    return {(entry.schedule_id, entry.scheduled_at): entry for entry in entries}
