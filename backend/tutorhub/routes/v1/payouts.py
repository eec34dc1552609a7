# backend/tutorhub/routes/v1/payouts.py
"""
Payout request routes - API v1

Endpoints:
    POST / - Request a payout from the available balance (teacher)
    GET / - List the calling teacher's payout requests
    GET /{payout_id} - Payout details
    POST /{payout_id}/approve - Approve and hand off to the payment rail (admin)
    POST /{payout_id}/reject - Reject and release the allocated funds (admin)
"""

import asyncio
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.orm import Session

from ...api.dependencies import (
    get_current_principal,
    get_current_teacher,
    get_db,
    get_payout_service,
    require_role,
)
from ...core.exceptions import DomainException
from ...core.principal import Principal, Role
from ...models.teacher import TeacherProfile
from ...models.wallet import PayoutStatus
from ...repositories.factory import RepositoryFactory
from ...schemas.base_responses import PaginatedResponse
from ...schemas.payout import PayoutCreate, PayoutReject, PayoutResponse
from ...services.payout_service import PayoutService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payouts-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def request_payout(
    payload: PayoutCreate,
    teacher: TeacherProfile = Depends(get_current_teacher),
    payout_service: PayoutService = Depends(get_payout_service),
) -> PayoutResponse:
    """
    Earmark funds for withdrawal.

    409 PAYOUT_ALLOCATION_IN_PROGRESS means another request for the same
    wallet is being allocated; retry shortly.
    """
    try:
        payout = await asyncio.to_thread(
            payout_service.request_payout,
            teacher.id,
            payload.amount,
            payload.method,
            payload.account_ref,
        )
        return PayoutResponse.model_validate(payout)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=PaginatedResponse[PayoutResponse])
async def list_payouts(
    status_filter: Optional[PayoutStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    teacher: TeacherProfile = Depends(get_current_teacher),
    payout_service: PayoutService = Depends(get_payout_service),
) -> PaginatedResponse[PayoutResponse]:
    payouts, total = await asyncio.to_thread(
        payout_service.list_payouts, teacher.id, status_filter, page, per_page
    )
    return PaginatedResponse.build(
        [PayoutResponse.model_validate(p) for p in payouts], total, page, per_page
    )


@router.get("/{payout_id}", response_model=PayoutResponse)
async def get_payout(
    payout_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    payout_service: PayoutService = Depends(get_payout_service),
) -> PayoutResponse:
    teacher_id: Optional[str] = None
    if not principal.is_admin:
        teacher = RepositoryFactory.create_teacher_repository(db).get_by_user_id(principal.user_id)
        if not teacher:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a teacher")
        teacher_id = teacher.id
    try:
        payout = await asyncio.to_thread(payout_service.get, payout_id, teacher_id)
        return PayoutResponse.model_validate(payout)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{payout_id}/approve", response_model=PayoutResponse)
async def approve_payout(
    payout_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_role(Role.ADMIN)),
    payout_service: PayoutService = Depends(get_payout_service),
) -> PayoutResponse:
    try:
        payout = await asyncio.to_thread(payout_service.approve, payout_id, principal.user_id)
        return PayoutResponse.model_validate(payout)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{payout_id}/reject", response_model=PayoutResponse)
async def reject_payout(
    payload: PayoutReject,
    payout_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(require_role(Role.ADMIN)),
    payout_service: PayoutService = Depends(get_payout_service),
) -> PayoutResponse:
    try:
        payout = await asyncio.to_thread(
            payout_service.reject, payout_id, payload.reason, principal.user_id
        )
        return PayoutResponse.model_validate(payout)
    except DomainException as e:
        handle_domain_exception(e)
