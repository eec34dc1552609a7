# backend/tutorhub/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    GET / - List the caller's bookings with filters and pagination
    POST / - Reserve a lesson (student)
    GET /stats/overview - Booking counts by status and type for the caller
    GET /{booking_id} - Booking details (participants and admins)
    POST /{booking_id}/confirm - Accept a pending booking (teacher)
    POST /{booking_id}/cancel - Cancel a pending or confirmed booking
    POST /{booking_id}/reschedule - Move a booking to a new interval
    POST /{booking_id}/void - Cancel a completed booking and reverse its earning (admin)
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.orm import Session

from ...api.dependencies import (
    get_booking_service,
    get_current_principal,
    get_db,
    require_role,
)
from ...core.exceptions import DomainException
from ...core.principal import Principal, Role
from ...models.booking import BookingStatus
from ...repositories.factory import RepositoryFactory
from ...schemas.base_responses import PaginatedResponse
from ...schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingReschedule,
    BookingResponse,
    BookingStatsResponse,
    BookingVoid,
)
from ...services.booking_service import BookingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _participant_filters(principal: Principal, teacher_id: Optional[str], db: Session) -> dict:
    """Scope booking reads to the caller; only admins may pick a teacher."""
    if principal.role == Role.STUDENT:
        return {"student_id": principal.user_id}
    if principal.role == Role.TEACHER:
        teacher = RepositoryFactory.create_teacher_repository(db).get_by_user_id(principal.user_id)
        if not teacher:
            raise HTTPException(status_code=404, detail="Teacher profile not found")
        return {"teacher_id": teacher.id}
    if teacher_id:
        return {"teacher_id": teacher_id}
    return {}


# ============================================================================
# Static routes (no path parameters)
# ============================================================================


@router.get("", response_model=PaginatedResponse[BookingResponse])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    teacher_id: Optional[str] = Query(None, description="Admin only"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
) -> PaginatedResponse[BookingResponse]:
    """Students see their own bookings, teachers the bookings on their calendar."""
    filters = _participant_filters(principal, teacher_id, db)

    try:
        bookings, total = await asyncio.to_thread(
            booking_service.list_bookings,
            status=status_filter,
            page=page,
            per_page=per_page,
            **filters,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return PaginatedResponse.build(
        [BookingResponse.model_validate(b) for b in bookings], total, page, per_page
    )


@router.get("/stats/overview", response_model=BookingStatsResponse)
async def get_booking_stats(
    teacher_id: Optional[str] = Query(None, description="Admin only"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingStatsResponse:
    """Counts by status and type for the caller's bookings."""
    filters = _participant_filters(principal, teacher_id, db)
    try:
        stats = await asyncio.to_thread(booking_service.stats_overview, **filters)
    except DomainException as e:
        handle_domain_exception(e)
    return BookingStatsResponse(**stats)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    principal: Principal = Depends(require_role(Role.STUDENT)),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Reserve a lesson.

    409 SLOT_TAKEN means another booking got there first; re-fetch slots.
    """
    try:
        booking = await asyncio.to_thread(
            booking_service.reserve,
            teacher_id=payload.teacher_id,
            student_id=principal.user_id,
            subject_offering_id=payload.subject_offering_id,
            start_at=payload.start_at,
            end_at=payload.end_at,
            booking_type=payload.booking_type,
            student_timezone=payload.student_timezone,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# Dynamic routes
# ============================================================================


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.get_booking,
            booking_id,
            actor_id=principal.user_id,
            is_admin=principal.is_admin,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_role(Role.TEACHER, Role.ADMIN)),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.confirm,
            booking_id,
            principal.user_id,
            is_admin=principal.is_admin,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    payload: BookingCancel,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.cancel,
            booking_id,
            principal.user_id,
            payload.reason,
            is_admin=principal.is_admin,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    payload: BookingReschedule,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.reschedule,
            booking_id,
            principal.user_id,
            payload.start_at,
            payload.end_at,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/void", response_model=BookingResponse)
async def void_booking(
    payload: BookingVoid,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_role(Role.ADMIN)),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Dispute resolution for lessons that already completed."""
    try:
        booking = await asyncio.to_thread(
            booking_service.void_completed, booking_id, principal.user_id, payload.reason
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)
