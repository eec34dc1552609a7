# backend/tutorhub/routes/v1/wallet.py
"""
Teacher wallet routes - API v1

Endpoints:
    GET /balance - Pending, available and lifetime net earnings
    GET /entries - Ledger lines, newest first
    GET /earnings/summary - Totals over a date range, with recent entries
    POST /bookings/{booking_id}/reversal - Offset a booking's earning (admin)
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ...api.dependencies import get_current_teacher, get_wallet_service, require_role
from ...core.exceptions import DomainException
from ...core.principal import Principal, Role
from ...models.teacher import TeacherProfile
from ...models.wallet import WalletEntryStatus
from ...schemas.base_responses import PaginatedResponse
from ...schemas.wallet import (
    EarningsSummaryResponse,
    WalletBalanceResponse,
    WalletEntryResponse,
    WalletReversalRequest,
)
from ...services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wallet-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/balance", response_model=WalletBalanceResponse)
async def get_balance(
    teacher: TeacherProfile = Depends(get_current_teacher),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> WalletBalanceResponse:
    try:
        totals = await asyncio.to_thread(wallet_service.balance, teacher.id)
    except DomainException as e:
        handle_domain_exception(e)
    return WalletBalanceResponse(teacher_id=teacher.id, **totals)


@router.get("/entries", response_model=PaginatedResponse[WalletEntryResponse])
async def list_entries(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status_filter: Optional[WalletEntryStatus] = Query(None, alias="status"),
    teacher: TeacherProfile = Depends(get_current_teacher),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> PaginatedResponse[WalletEntryResponse]:
    entries, total = await asyncio.to_thread(
        wallet_service.list_entries, teacher.id, page, page_size, status_filter
    )
    return PaginatedResponse.build(
        [WalletEntryResponse.model_validate(entry) for entry in entries], total, page, page_size
    )


@router.get("/earnings/summary", response_model=EarningsSummaryResponse)
async def get_earnings_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status_filter: Optional[WalletEntryStatus] = Query(None, alias="status"),
    teacher: TeacherProfile = Depends(get_current_teacher),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> EarningsSummaryResponse:
    try:
        summary = await asyncio.to_thread(
            wallet_service.earnings_summary, teacher.id, start_date, end_date, status_filter
        )
    except DomainException as e:
        handle_domain_exception(e)
    recent = [WalletEntryResponse.model_validate(entry) for entry in summary.pop("recent_entries")]
    return EarningsSummaryResponse(recent_entries=recent, **summary)


@router.post(
    "/bookings/{booking_id}/reversal",
    response_model=WalletEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reverse_booking_earning(
    payload: WalletReversalRequest,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_role(Role.ADMIN)),
    wallet_service: WalletService = Depends(get_wallet_service),
) -> WalletEntryResponse:
    try:
        entry = await asyncio.to_thread(
            wallet_service.reverse_for_booking, booking_id, payload.reason
        )
    except DomainException as e:
        handle_domain_exception(e)
    logger.warning(
        "Admin reversed booking earning",
        extra={"booking_id": booking_id, "admin_id": principal.user_id},
    )
    return WalletEntryResponse.model_validate(entry)
