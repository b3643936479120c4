"""Scheduling router - FastAPI endpoints for schedules and the calendar"""

import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    CalendarEventResponse,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
    TerminateRequest,
)
from .service import CalendarService, ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])
calendar_router = APIRouter(prefix="/calendar", tags=["Calendar"])


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


def get_calendar_service(db: Session = Depends(get_db)) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db)


# ============================================================================
# SCHEDULE STORE
# ============================================================================


@router.get("", response_model=list[ScheduleResponse])
async def list_schedules(
    include_inactive: bool = Query(False, alias="includeInactive"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """List schedules, active ones only unless asked otherwise"""
    return [ScheduleResponse.from_model(s) for s in service.list_schedules(include_inactive)]


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(
    schedule_id: int,
    service: ScheduleService = Depends(get_schedule_service),
):
    return ScheduleResponse.from_model(service.get_schedule(schedule_id))


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create a schedule; 409 when it collides with an active one"""
    return ScheduleResponse.from_model(service.create_schedule(data))


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    mode: Literal["overwrite", "history"] = Query("overwrite"),
    cutoff: Optional[date] = Query(None, description="First day of the new row in history mode"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """
    Update a schedule in place (overwrite) or close it and continue it in a new
    row from the cutoff (history). The response is the row now in force.
    """
    return ScheduleResponse.from_model(service.update_schedule(schedule_id, data, mode, cutoff))


@router.post("/{schedule_id}/terminate", response_model=ScheduleResponse)
async def terminate_schedule(
    schedule_id: int,
    data: TerminateRequest,
    service: ScheduleService = Depends(get_schedule_service),
):
    return ScheduleResponse.from_model(service.terminate_schedule(schedule_id, data.endDate))


@router.delete("/{schedule_id}", response_model=ScheduleResponse)
async def delete_schedule(
    schedule_id: int,
    mode: Literal["history", "everything"] = Query("history"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """history: end the schedule today. everything: deactivate it entirely."""
    return ScheduleResponse.from_model(service.delete_schedule(schedule_id, mode))


# ============================================================================
# CALENDAR
# ============================================================================


@calendar_router.get("", response_model=list[CalendarEventResponse])
async def get_calendar(
    start: date = Query(..., description="First day, inclusive (YYYY-MM-DD)"),
    end: date = Query(..., description="Last day, inclusive (YYYY-MM-DD)"),
    service: CalendarService = Depends(get_calendar_service),
):
    """Materialized calendar events for the range"""
    events = service.generate_calendar(start, end)
    return [CalendarEventResponse.from_event(e) for e in events]
