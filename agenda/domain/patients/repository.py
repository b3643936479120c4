"""Patient directory - Read-only patient lookups used to label calendar events"""

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...models import Patient

logger = logging.getLogger(__name__)


class PatientDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get(self, patient_id: int) -> Optional[dict]:
        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            return None
        return {"name": patient.full_name, "email": patient.email or ""}

    def exists(self, patient_id: int) -> bool:
        return self.db.query(Patient.id).filter(Patient.id == patient_id).first() is not None

    def get_many(self, patient_ids: Iterable[int]) -> dict:
        """Batch lookup; a failed lookup yields an empty mapping rather than an error"""
        ids = {pid for pid in patient_ids if pid is not None}
        if not ids:
            return {}
        try:
            patients = self.db.query(Patient).filter(Patient.id.in_(ids)).all()
        except Exception as e:
            logger.error(f"❌ Patient lookup failed, rendering placeholders: {e}")
            return {}
        return {p.id: {"name": p.full_name, "email": p.email or ""} for p in patients}
