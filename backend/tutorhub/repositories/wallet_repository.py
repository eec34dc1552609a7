# backend/tutorhub/repositories/wallet_repository.py
"""
Wallet ledger data access.

The ledger is append-only: besides inserts, the only write this repository
performs is the conditional status flip used by the maturation sweep and by
payout settlement.
"""

from datetime import datetime
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from ..models.wallet import (
    PayoutAllocation,
    PayoutRequest,
    PayoutStatus,
    WalletEntry,
    WalletEntryStatus,
    WalletEntryType,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WalletRepository(BaseRepository[WalletEntry]):
    def __init__(self, db: Session):
        super().__init__(db, WalletEntry)

    def get_earning_for_booking(self, booking_id: str) -> Optional[WalletEntry]:
        return self.find_one_by(booking_id=booking_id, entry_type=WalletEntryType.EARNING)

    def get_reversal_of(self, entry_id: str) -> Optional[WalletEntry]:
        return self.find_one_by(reverses_entry_id=entry_id)

    # Maturation sweep

    def find_promotable_ids(self, now: datetime, limit: int = 1000) -> List[str]:
        """
        Ids of PENDING earnings whose hold period has elapsed.

        Earnings of cancelled bookings and earnings that already carry a
        reversal are never promoted; pending reversals are never promoted
        either, since they only offset pending earnings.
        """
        reversal = aliased(WalletEntry)
        query = (
            self.db.query(WalletEntry.id)
            .join(Booking, Booking.id == WalletEntry.booking_id)
            .outerjoin(reversal, reversal.reverses_entry_id == WalletEntry.id)
            .filter(
                WalletEntry.status == WalletEntryStatus.PENDING,
                WalletEntry.entry_type == WalletEntryType.EARNING,
                WalletEntry.available_at <= now,
                Booking.status != BookingStatus.CANCELLED,
                reversal.id.is_(None),
            )
            .order_by(WalletEntry.available_at, WalletEntry.id)
            .limit(limit)
        )
        try:
            return [row[0] for row in query.all()]
        except SQLAlchemyError as exc:
            self.logger.error("Error finding promotable wallet entries: %s", exc)
            raise RepositoryException(f"Failed to find promotable entries: {exc}") from exc

    def transition_status(
        self,
        entry_ids: Iterable[str],
        from_status: WalletEntryStatus,
        to_status: WalletEntryStatus,
    ) -> int:
        """
        Flip ``from_status`` entries to ``to_status``.

        The status predicate makes the update a no-op for rows another run
        already moved, so overlapping sweeps never double-promote.
        """
        ids = list(entry_ids)
        if not ids:
            return 0
        try:
            updated = (
                self.db.query(WalletEntry)
                .filter(WalletEntry.id.in_(ids), WalletEntry.status == from_status)
                .update({WalletEntry.status: to_status}, synchronize_session="fetch")
            )
            self.db.flush()
            return int(updated)
        except SQLAlchemyError as exc:
            self.logger.error("Error updating wallet entry status: %s", exc)
            raise RepositoryException(f"Failed to update wallet entries: {exc}") from exc

    # Balances

    def net_totals_by_status(self, teacher_id: str) -> Dict[WalletEntryStatus, int]:
        query = (
            self.db.query(
                WalletEntry.status,
                func.coalesce(func.sum(WalletEntry.amount - WalletEntry.commission), 0),
            )
            .filter(WalletEntry.teacher_id == teacher_id)
            .group_by(WalletEntry.status)
        )
        totals = {status: 0 for status in WalletEntryStatus}
        for status, total in self._execute_query(query):
            totals[WalletEntryStatus(status)] = int(total or 0)
        return totals

    def allocation_totals_by_payout_status(self, teacher_id: str) -> Dict[PayoutStatus, int]:
        query = (
            self.db.query(PayoutRequest.status, func.coalesce(func.sum(PayoutAllocation.amount), 0))
            .join(PayoutAllocation, PayoutAllocation.payout_request_id == PayoutRequest.id)
            .filter(PayoutRequest.teacher_id == teacher_id)
            .group_by(PayoutRequest.status)
        )
        totals = {status: 0 for status in PayoutStatus}
        for status, total in self._execute_query(query):
            totals[PayoutStatus(status)] = int(total or 0)
        return totals

    def allocated_by_entry(
        self, entry_ids: Iterable[str], payout_statuses: Iterable[PayoutStatus]
    ) -> Dict[str, int]:
        """Sum of allocations per wallet entry, restricted to payouts in ``payout_statuses``."""
        ids = list(entry_ids)
        if not ids:
            return {}
        query = (
            self.db.query(PayoutAllocation.wallet_entry_id, func.sum(PayoutAllocation.amount))
            .join(PayoutRequest, PayoutRequest.id == PayoutAllocation.payout_request_id)
            .filter(
                PayoutAllocation.wallet_entry_id.in_(ids),
                PayoutRequest.status.in_(list(payout_statuses)),
            )
            .group_by(PayoutAllocation.wallet_entry_id)
        )
        return {entry_id: int(total or 0) for entry_id, total in self._execute_query(query)}

    def available_earnings_fifo(self, teacher_id: str) -> List[WalletEntry]:
        """
        AVAILABLE earnings that can still back a payout, oldest-earned first.

        Same exclusions as the maturation sweep: an earning whose booking was
        cancelled or that already carries a reversal backs no money.
        """
        reversal = aliased(WalletEntry)
        query = (
            self.db.query(WalletEntry)
            .join(Booking, Booking.id == WalletEntry.booking_id)
            .outerjoin(reversal, reversal.reverses_entry_id == WalletEntry.id)
            .filter(
                WalletEntry.teacher_id == teacher_id,
                WalletEntry.status == WalletEntryStatus.AVAILABLE,
                WalletEntry.entry_type == WalletEntryType.EARNING,
                Booking.status != BookingStatus.CANCELLED,
                reversal.id.is_(None),
            )
            .order_by(WalletEntry.available_at, WalletEntry.created_at, WalletEntry.id)
        )
        return self._execute_query(query)

    def list_for_teacher(
        self,
        teacher_id: str,
        *,
        status: Optional[WalletEntryStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[WalletEntry], int]:
        query = self.db.query(WalletEntry).filter(WalletEntry.teacher_id == teacher_id)
        if status:
            query = query.filter(WalletEntry.status == status)
        query = query.order_by(WalletEntry.created_at.desc(), WalletEntry.id.desc())
        return self._paginate(query, page, per_page)

    # Earnings summary

    def _entries_created_between(
        self,
        query,
        teacher_id: str,
        created_from: Optional[datetime],
        created_before: Optional[datetime],
        status: Optional[WalletEntryStatus],
    ):
        query = query.filter(WalletEntry.teacher_id == teacher_id)
        if created_from:
            query = query.filter(WalletEntry.created_at >= created_from)
        if created_before:
            query = query.filter(WalletEntry.created_at < created_before)
        if status:
            query = query.filter(WalletEntry.status == status)
        return query

    def summarize_entries(
        self,
        teacher_id: str,
        *,
        created_from: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        status: Optional[WalletEntryStatus] = None,
    ) -> Dict[WalletEntryStatus, Tuple[int, int, int]]:
        """Gross amount, commission and entry count per status, reversals included."""
        query = self.db.query(
            WalletEntry.status,
            func.coalesce(func.sum(WalletEntry.amount), 0),
            func.coalesce(func.sum(WalletEntry.commission), 0),
            func.count(WalletEntry.id),
        )
        query = self._entries_created_between(
            query, teacher_id, created_from, created_before, status
        ).group_by(WalletEntry.status)
        totals = {entry_status: (0, 0, 0) for entry_status in WalletEntryStatus}
        for entry_status, amount, commission, count in self._execute_query(query):
            totals[WalletEntryStatus(entry_status)] = (
                int(amount or 0),
                int(commission or 0),
                int(count or 0),
            )
        return totals

    def recent_entries(
        self,
        teacher_id: str,
        *,
        created_from: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        status: Optional[WalletEntryStatus] = None,
        limit: int = 50,
    ) -> List[WalletEntry]:
        query = self._entries_created_between(
            self.db.query(WalletEntry), teacher_id, created_from, created_before, status
        )
        query = query.order_by(WalletEntry.created_at.desc(), WalletEntry.id.desc()).limit(limit)
        return self._execute_query(query)
