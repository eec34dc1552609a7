"""Wallet ledger schemas. All amounts are integer minor units."""

import datetime
from typing import List, Optional

from pydantic import Field

from ..models.wallet import WalletEntryStatus, WalletEntryType
from ._strict_base import ORMResponseModel, StrictModel, StrictRequestModel


class WalletBalanceResponse(StrictModel):
    teacher_id: str
    pending_amount: int = Field(description="Maturing earnings plus funds held by open payouts")
    available_amount: int = Field(description="Withdrawable now")
    reserved_amount: int = Field(description="Part of pending_amount held by open payouts")
    paid_amount: int = Field(description="Paid out through settled payouts")
    total_earnings: int = Field(description="Lifetime net earnings")


class WalletEntryResponse(ORMResponseModel):
    id: str
    booking_id: str
    entry_type: WalletEntryType
    amount: int
    commission: int
    net_amount: int
    status: WalletEntryStatus
    available_at: datetime.datetime
    reverses_entry_id: Optional[str]
    created_at: datetime.datetime


class WalletReversalRequest(StrictRequestModel):
    reason: str = Field(min_length=1, max_length=500)


class EarningsSummaryResponse(StrictModel):
    teacher_id: str
    start_date: Optional[datetime.date]
    end_date: Optional[datetime.date]
    status: Optional[WalletEntryStatus]
    total_earnings: int = Field(description="Gross amount of matching entries, reversals included")
    total_commission: int
    net_earnings: int
    total_transactions: int
    pending_amount: int = Field(description="Net of matching PENDING entries")
    available_amount: int = Field(description="Net of matching AVAILABLE entries")
    paid_amount: int = Field(description="Net of matching PAID entries")
    recent_entries: List[WalletEntryResponse] = Field(description="Up to 50, newest first")
