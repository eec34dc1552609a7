# backend/tutorhub/services/wallet_service.py
"""
Wallet Service

Append-only teacher ledger. A completed booking produces exactly one
EARNING entry that matures from PENDING to AVAILABLE after the hold
period. Corrections are REVERSAL entries; nothing is edited or deleted.

Balance identity, for every teacher at every point in time:

    available_amount + pending_amount + paid_amount == total_earnings
"""

from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    LockUnavailableException,
    NotFoundException,
    ValidationException,
)
from ..core.money import commission_for
from ..core.teacher_lock import teacher_lock
from ..models.booking import Booking
from ..models.wallet import PayoutStatus, WalletEntry, WalletEntryStatus, WalletEntryType
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 1000
RECENT_EARNINGS_LIMIT = 50


class WalletService(BaseService):
    """Ledger writes, maturation and balance aggregation."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_wallet_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)

    @contextmanager
    def locked_wallet(
        self, teacher_id: str, busy_code: str = "WALLET_UPDATE_IN_PROGRESS"
    ) -> Iterator[None]:
        """
        Run a wallet mutation in one transaction while holding the teacher's wallet mutex.

        Payout allocation and reversals both go through here, so a reversal
        can never land between the balance check and the allocation of a
        payout. Neither lock waits: a busy wallet raises ConflictException
        with ``busy_code``.
        """
        busy = ConflictException(
            "Another update to this wallet is being processed, please retry",
            code=busy_code,
            details={"teacher_id": teacher_id},
        )
        with teacher_lock(teacher_id, "wallet") as acquired:
            if not acquired:
                raise busy
            with self.transaction():
                try:
                    self.teacher_repository.lock_profile(teacher_id)
                except LockUnavailableException:
                    raise busy
                yield

    # Writes that join the caller's transaction

    def record_earning(self, booking: Booking, completed_at: Optional[datetime] = None) -> WalletEntry:
        """
        Append the EARNING entry for a completed booking without committing.

        Idempotent per booking: a second call returns the existing entry.
        """
        existing = self.repository.get_earning_for_booking(booking.id)
        if existing:
            logger.info(
                "Wallet entry already exists for booking",
                extra={"booking_id": booking.id, "wallet_entry_id": existing.id},
            )
            return existing

        completed_at = completed_at or booking.completed_at or datetime.now(timezone.utc)
        rate = settings.commission_rate_for(booking.booking_type.value)
        amount = booking.price_at_booking
        entry = self.repository.create(
            teacher_id=booking.teacher_id,
            booking_id=booking.id,
            entry_type=WalletEntryType.EARNING,
            amount=amount,
            commission=commission_for(amount, rate),
            status=WalletEntryStatus.PENDING,
            available_at=completed_at + timedelta(hours=settings.wallet_hold_period_hours),
        )
        logger.info(
            "Recorded earning",
            extra={
                "booking_id": booking.id,
                "teacher_id": booking.teacher_id,
                "amount": entry.amount,
                "commission": entry.commission,
                "available_at": entry.available_at.isoformat(),
            },
        )
        return entry

    def append_reversal(
        self, booking_id: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> Optional[WalletEntry]:
        """
        Offset a booking's earning with a negated REVERSAL entry, without committing.

        A PENDING earning gets a PENDING reversal and neither is ever
        promoted. An AVAILABLE or PAID earning gets an AVAILABLE reversal,
        which lowers the withdrawable balance (possibly below zero).
        Returns None when the booking never produced an earning.
        """
        earning = self.repository.get_earning_for_booking(booking_id)
        if earning is None:
            return None
        existing = self.repository.get_reversal_of(earning.id)
        if existing:
            return existing

        now = now or datetime.now(timezone.utc)
        if earning.status == WalletEntryStatus.PENDING:
            status, available_at = WalletEntryStatus.PENDING, earning.available_at
        else:
            status, available_at = WalletEntryStatus.AVAILABLE, now

        reversal = self.repository.create(
            teacher_id=earning.teacher_id,
            booking_id=booking_id,
            entry_type=WalletEntryType.REVERSAL,
            amount=-earning.amount,
            commission=-earning.commission,
            status=status,
            available_at=available_at,
            reverses_entry_id=earning.id,
            note=reason,
        )
        logger.warning(
            "Reversed earning",
            extra={
                "booking_id": booking_id,
                "teacher_id": earning.teacher_id,
                "reversed_entry_id": earning.id,
                "reversal_status": status.value,
            },
        )
        return reversal

    # Public operations

    @BaseService.measure_operation("create_entry_for_booking")
    def create_entry_for_booking(
        self, booking_id: str, completed_at: Optional[datetime] = None
    ) -> WalletEntry:
        booking = self.booking_repository.get_by_id(booking_id, load_relationships=False)
        if not booking:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        with self.transaction():
            entry = self.record_earning(booking, completed_at)
        return entry

    @BaseService.measure_operation("reverse_for_booking")
    def reverse_for_booking(self, booking_id: str, reason: Optional[str] = None) -> WalletEntry:
        booking = self.booking_repository.get_by_id(booking_id, load_relationships=False)
        if not booking:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        with self.locked_wallet(booking.teacher_id):
            reversal = self.append_reversal(booking_id, reason)
        if reversal is None:
            raise NotFoundException(
                f"No wallet earning recorded for booking {booking_id}",
                code="WALLET_ENTRY_NOT_FOUND",
            )
        return reversal

    @BaseService.measure_operation("sweep")
    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Promote matured PENDING earnings to AVAILABLE.

        Safe to run repeatedly or concurrently: each batch only flips rows
        still PENDING, so an entry is promoted at most once.
        """
        now = now or datetime.now(timezone.utc)
        promoted = 0
        while True:
            ids = self.repository.find_promotable_ids(now, limit=SWEEP_BATCH_SIZE)
            if not ids:
                break
            with self.transaction():
                count = self.repository.transition_status(
                    ids, WalletEntryStatus.PENDING, WalletEntryStatus.AVAILABLE
                )
            promoted += count
            if len(ids) < SWEEP_BATCH_SIZE or count == 0:
                break

        if promoted:
            prometheus_metrics.record_wallet_promotions(promoted)
        self.log_operation("sweep", promoted=promoted, as_of=now.isoformat())
        return promoted

    @BaseService.measure_operation("balance")
    def balance(self, teacher_id: str) -> Dict[str, int]:
        net = self.repository.net_totals_by_status(teacher_id)
        allocated = self.repository.allocation_totals_by_payout_status(teacher_id)

        reserved = allocated[PayoutStatus.PENDING] + allocated[PayoutStatus.APPROVED]
        paid = allocated[PayoutStatus.PAID]
        settled = net[WalletEntryStatus.AVAILABLE] + net[WalletEntryStatus.PAID]

        return {
            "pending_amount": net[WalletEntryStatus.PENDING] + reserved,
            "available_amount": settled - reserved - paid,
            "reserved_amount": reserved,
            "paid_amount": paid,
            "total_earnings": sum(net.values()),
        }

    def list_entries(
        self,
        teacher_id: str,
        page: int = 1,
        per_page: int = 20,
        status: Optional[WalletEntryStatus] = None,
    ) -> Tuple[List[WalletEntry], int]:
        return self.repository.list_for_teacher(
            teacher_id, status=status, page=page, per_page=per_page
        )

    @BaseService.measure_operation("earnings_summary")
    def earnings_summary(
        self,
        teacher_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[WalletEntryStatus] = None,
    ) -> Dict[str, Any]:
        """
        Ledger totals for entries created in ``[start_date, end_date]`` (UTC days).

        Both bounds and ``status`` are optional and narrow every figure,
        including the per-status net amounts. Reversals count as entries
        with negative amounts. The most recent entries come back newest first.
        """
        if start_date and end_date and end_date < start_date:
            raise ValidationException(
                "end_date must not be before start_date",
                code="INVALID_DATE_RANGE",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        bounds = {
            "created_from": (
                datetime.combine(start_date, time(0), tzinfo=timezone.utc) if start_date else None
            ),
            "created_before": (
                datetime.combine(end_date + timedelta(days=1), time(0), tzinfo=timezone.utc)
                if end_date
                else None
            ),
            "status": status,
        }
        totals = self.repository.summarize_entries(teacher_id, **bounds)

        gross = sum(amount for amount, _, _ in totals.values())
        commission = sum(fee for _, fee, _ in totals.values())
        net = {entry_status: amount - fee for entry_status, (amount, fee, _) in totals.items()}
        return {
            "teacher_id": teacher_id,
            "start_date": start_date,
            "end_date": end_date,
            "status": status,
            "total_earnings": gross,
            "total_commission": commission,
            "net_earnings": gross - commission,
            "total_transactions": sum(count for _, _, count in totals.values()),
            "pending_amount": net[WalletEntryStatus.PENDING],
            "available_amount": net[WalletEntryStatus.AVAILABLE],
            "paid_amount": net[WalletEntryStatus.PAID],
            "recent_entries": self.repository.recent_entries(
                teacher_id, limit=RECENT_EARNINGS_LIMIT, **bounds
            ),
        }
