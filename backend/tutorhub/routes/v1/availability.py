# backend/tutorhub/routes/v1/availability.py
"""
Availability rule routes - API v1

Mounted under /api/v1/teachers.

Endpoints:
    GET /{teacher_id}/availability/rules - List a teacher's rules
    POST /{teacher_id}/availability/rules - Add one rule (teacher self)
    PUT /{teacher_id}/availability/rules - Bulk save, optionally replacing all rules
    PATCH /{teacher_id}/availability/rules/{rule_id} - Edit a rule in place
    DELETE /{teacher_id}/availability/rules/{rule_id} - Remove a rule
"""

import asyncio
import logging
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.orm import Session

from ...api.dependencies import (
    ensure_teacher_owner,
    get_availability_service,
    get_current_principal,
    get_db,
)
from ...core.exceptions import DomainException
from ...core.principal import Principal
from ...schemas.availability import (
    AvailabilityRuleCreate,
    AvailabilityRuleResponse,
    AvailabilityRulesReplace,
    AvailabilityRuleUpdate,
)
from ...schemas.base_responses import DeleteResponse
from ...services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get(
    "/{teacher_id}/availability/rules",
    response_model=List[AvailabilityRuleResponse],
)
async def list_rules(
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[AvailabilityRuleResponse]:
    try:
        rules = await asyncio.to_thread(service.list_rules, teacher_id)
        return [AvailabilityRuleResponse.model_validate(rule) for rule in rules]
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{teacher_id}/availability/rules",
    response_model=AvailabilityRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule(
    payload: AvailabilityRuleCreate,
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityRuleResponse:
    ensure_teacher_owner(teacher_id, principal, db)
    try:
        rule = await asyncio.to_thread(service.create_rule, teacher_id, payload)
        return AvailabilityRuleResponse.model_validate(rule)
    except DomainException as e:
        handle_domain_exception(e)


@router.put(
    "/{teacher_id}/availability/rules",
    response_model=List[AvailabilityRuleResponse],
)
async def replace_rules(
    payload: AvailabilityRulesReplace,
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[AvailabilityRuleResponse]:
    """Save a batch of rules atomically; by default the batch replaces every existing rule."""
    ensure_teacher_owner(teacher_id, principal, db)
    try:
        rules = await asyncio.to_thread(
            service.replace_rules, teacher_id, payload.rules, payload.replace_existing
        )
        return [AvailabilityRuleResponse.model_validate(rule) for rule in rules]
    except DomainException as e:
        handle_domain_exception(e)


@router.patch(
    "/{teacher_id}/availability/rules/{rule_id}",
    response_model=AvailabilityRuleResponse,
)
async def update_rule(
    payload: AvailabilityRuleUpdate,
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    rule_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityRuleResponse:
    ensure_teacher_owner(teacher_id, principal, db)
    try:
        rule = await asyncio.to_thread(service.update_rule, teacher_id, rule_id, payload)
        return AvailabilityRuleResponse.model_validate(rule)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete(
    "/{teacher_id}/availability/rules/{rule_id}",
    response_model=DeleteResponse,
)
async def delete_rule(
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    rule_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    service: AvailabilityService = Depends(get_availability_service),
) -> DeleteResponse:
    ensure_teacher_owner(teacher_id, principal, db)
    try:
        await asyncio.to_thread(service.delete_rule, teacher_id, rule_id)
        return DeleteResponse(message="Availability rule deleted")
    except DomainException as e:
        handle_domain_exception(e)
