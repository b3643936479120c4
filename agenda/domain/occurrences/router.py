"""Occurrence router - FastAPI endpoints for occurrence transitions"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    CancelRequest,
    ConfirmRequest,
    NoShowRequest,
    NotesRequest,
    OccurrenceResponse,
    RescheduleRequest,
)
from .service import OccurrenceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/occurrences", tags=["Occurrences"])


def get_occurrence_service(db: Session = Depends(get_db)) -> OccurrenceService:
    """Dependency injection for OccurrenceService"""
    return OccurrenceService(db)


@router.post("/confirm", response_model=OccurrenceResponse)
async def confirm_occurrence(
    data: ConfirmRequest,
    service: OccurrenceService = Depends(get_occurrence_service),
):
    """Confirm attendance; the price of the original slot is frozen"""
    occurrence = service.confirm(data.scheduleId, data.originalDate, data.realizationDate)
    return OccurrenceResponse.from_model(occurrence)


@router.post("/reschedule", response_model=OccurrenceResponse)
async def reschedule_occurrence(
    data: RescheduleRequest,
    service: OccurrenceService = Depends(get_occurrence_service),
):
    occurrence = service.reschedule(data.scheduleId, data.originalDate, data.newDate)
    return OccurrenceResponse.from_model(occurrence)


@router.post("/no-show", response_model=OccurrenceResponse)
async def register_no_show(
    data: NoShowRequest,
    service: OccurrenceService = Depends(get_occurrence_service),
):
    occurrence = service.register_no_show(data.scheduleId, data.originalDate, data.charge)
    return OccurrenceResponse.from_model(occurrence)


@router.post("/cancel", response_model=OccurrenceResponse)
async def cancel_occurrence(
    data: CancelRequest,
    service: OccurrenceService = Depends(get_occurrence_service),
):
    occurrence = service.cancel(data.scheduleId, data.originalDate)
    return OccurrenceResponse.from_model(occurrence)


@router.post("/notes", response_model=OccurrenceResponse)
async def update_occurrence_notes(
    data: NotesRequest,
    service: OccurrenceService = Depends(get_occurrence_service),
):
    occurrence = service.update_notes(data.scheduleId, data.originalDate, data.notes)
    return OccurrenceResponse.from_model(occurrence)


@router.get("", response_model=OccurrenceResponse)
async def get_occurrence(
    schedule_id: int = Query(..., alias="scheduleId"),
    original_date: datetime = Query(..., alias="originalDate"),
    service: OccurrenceService = Depends(get_occurrence_service),
):
    """Recorded ledger row for one slot; 404 while the occurrence is still implicit"""
    return OccurrenceResponse.from_model(service.get(schedule_id, original_date))


@router.get("/patient/{patient_id}", response_model=list[OccurrenceResponse])
async def list_patient_occurrences(
    patient_id: int,
    service: OccurrenceService = Depends(get_occurrence_service),
):
    """Ledger rows for every schedule of the patient, newest slot first"""
    return [OccurrenceResponse.from_model(o) for o in service.list_for_patient(patient_id)]
