"""Domain errors raised by the scheduling core and mapped to HTTP responses in main"""

from datetime import datetime
from typing import Optional


class AgendaError(Exception):
    """Base class for errors the caller can correct"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ScheduleConflictError(AgendaError):
    """Raised when a schedule claims a weekday/time slot already taken"""

    status_code = 409

    def __init__(self, patient_id: int, schedule_id: Optional[int] = None):
        super().__init__(
            f"Schedule conflict detected with an existing schedule (patient: {patient_id})"
        )
        self.patient_id = patient_id
        self.schedule_id = schedule_id


class ScheduleNotFoundError(AgendaError):
    status_code = 404

    def __init__(self, schedule_id: int):
        super().__init__(f"Schedule {schedule_id} not found")
        self.schedule_id = schedule_id


class OccurrenceNotFoundError(AgendaError):
    """No ledger row recorded for the slot; the occurrence is still implicit"""

    status_code = 404

    def __init__(self, schedule_id: int, scheduled_at: datetime):
        super().__init__(
            f"No occurrence recorded for schedule {schedule_id} at {scheduled_at.isoformat()}"
        )
        self.schedule_id = schedule_id
        self.scheduled_at = scheduled_at


class InvalidTransitionError(AgendaError):
    """Raised when an occurrence in a terminal status is asked to move again"""

    status_code = 409

    def __init__(self, status: str, action: str):
        super().__init__(f"Occurrence cannot be {action} because its status is: {status}")
        self.status = status
        self.action = action


class ValidationError(AgendaError):
    """Missing or malformed input, or an invalid date range"""

    status_code = 422
