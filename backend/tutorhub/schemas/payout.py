"""Payout request schemas."""

import datetime
from typing import List, Optional

from pydantic import Field

from ..models.wallet import PayoutMethod, PayoutStatus
from ._strict_base import ORMResponseModel, StrictModel, StrictRequestModel


class PayoutCreate(StrictRequestModel):
    amount: int = Field(gt=0)
    method: PayoutMethod
    account_ref: str = Field(min_length=5, max_length=100)


class PayoutReject(StrictRequestModel):
    reason: str = Field(min_length=1, max_length=500)


class PayoutAllocationResponse(ORMResponseModel):
    wallet_entry_id: str
    amount: int


class PayoutResponse(ORMResponseModel):
    id: str
    teacher_id: str
    amount: int
    method: PayoutMethod
    account_ref: str
    status: PayoutStatus
    requested_at: datetime.datetime
    approved_at: Optional[datetime.datetime]
    processed_at: Optional[datetime.datetime]
    failure_reason: Optional[str]
    external_ref: Optional[str]
    allocations: List[PayoutAllocationResponse]


class PayoutWebhookEvent(StrictModel):
    """Outcome notification from the payment rail."""

    payout_id: str
    outcome: str = Field(pattern="^(paid|failed)$")
    external_ref: Optional[str] = Field(default=None, max_length=255)
    failure_reason: Optional[str] = Field(default=None, max_length=500)
