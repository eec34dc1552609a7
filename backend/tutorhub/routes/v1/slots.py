# backend/tutorhub/routes/v1/slots.py
"""
Slot lookup routes - API v1

Mounted under /api/v1/teachers. Any authenticated caller may browse.

Endpoints:
    GET /{teacher_id}/slots - Bookable slots for a date range and duration
    GET /{teacher_id}/schedule - Per-day open and booked intervals
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ...api.dependencies import get_current_principal, get_slot_service
from ...core.exceptions import DomainException
from ...core.principal import Principal
from ...schemas.slots import AvailableSlotsResponse, ScheduleResponse
from ...services.slot_service import SlotService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["slots-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/{teacher_id}/slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    start_date: date = Query(..., description="First local date (inclusive)"),
    end_date: date = Query(..., description="Last local date (inclusive)"),
    duration: int = Query(..., gt=0, description="Lesson length in minutes"),
    timezone: Optional[str] = Query(None, description="IANA timezone of the requester"),
    subject_offering_id: Optional[str] = Query(None, pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    service: SlotService = Depends(get_slot_service),
) -> AvailableSlotsResponse:
    try:
        return await asyncio.to_thread(
            service.get_available_slots,
            teacher_id,
            start_date,
            end_date,
            duration,
            timezone,
            subject_offering_id,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{teacher_id}/schedule", response_model=ScheduleResponse)
async def get_schedule(
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    start_date: date = Query(...),
    end_date: date = Query(...),
    timezone: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    service: SlotService = Depends(get_slot_service),
) -> ScheduleResponse:
    try:
        return await asyncio.to_thread(
            service.get_schedule, teacher_id, start_date, end_date, timezone
        )
    except DomainException as e:
        handle_domain_exception(e)
