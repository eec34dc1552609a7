# backend/tutorhub/services/payout_service.py
"""
Payout Service

Turns a teacher's AVAILABLE balance into payout requests and drives them
through PENDING -> APPROVED -> PAID (or REJECTED / FAILED).

Allocation is serialized per teacher: the wallet mutex is taken without
waiting and the teacher row is locked NOWAIT inside the transaction, so
two concurrent requests (or a request and a reversal) can never earmark
the same funds. Rejected and failed requests release their allocations
simply by leaving the reserving statuses; nothing is rewritten.
"""

from datetime import datetime, timezone
import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    BelowMinimumPayoutException,
    BusinessRuleException,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
)
from ..events import EventPublisher, PayoutStatusChanged
from ..models.wallet import (
    RESERVING_PAYOUT_STATUSES,
    PayoutMethod,
    PayoutRequest,
    PayoutStatus,
    WalletEntryStatus,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

RailSubmitter = Callable[[str], None]


def _celery_rail_submitter(payout_id: str) -> None:
    from ..tasks.payout_tasks import submit_payout_to_rail

    submit_payout_to_rail.delay(payout_id)


class PayoutService(BaseService):
    """Payout requests, FIFO allocation and rail outcomes."""

    def __init__(
        self,
        db: Session,
        event_publisher: Optional[EventPublisher] = None,
        rail_submitter: Optional[RailSubmitter] = None,
    ):
        super().__init__(db)
        self.repository = RepositoryFactory.create_payout_repository(db)
        self.wallet_repository = RepositoryFactory.create_wallet_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.wallet_service = WalletService(db)
        self.event_publisher = event_publisher or EventPublisher()
        self._submit_to_rail = rail_submitter or _celery_rail_submitter

    def _get_payout(self, payout_id: str, for_update: bool = False) -> PayoutRequest:
        if for_update:
            payout = self.repository.get_for_update(payout_id)
        else:
            payout = self.repository.get_by_id(payout_id)
        if not payout:
            raise NotFoundException(f"Payout request {payout_id} not found", code="PAYOUT_NOT_FOUND")
        return payout

    def _after_transition(self, payout: PayoutRequest) -> None:
        prometheus_metrics.record_payout_transition(payout.status.value)
        self.event_publisher.publish(
            PayoutStatusChanged(
                payout_id=payout.id,
                teacher_id=payout.teacher_id,
                amount=payout.amount,
                status=payout.status.value,
                changed_at=datetime.now(timezone.utc),
                failure_reason=payout.failure_reason,
            )
        )

    def _validate_amount(self, amount: int) -> None:
        if amount < settings.min_payout_amount:
            raise BelowMinimumPayoutException(amount, settings.min_payout_amount)
        if amount > settings.max_payout_amount:
            raise BusinessRuleException(
                f"Maximum payout amount is {settings.max_payout_amount}",
                code="ABOVE_MAXIMUM_PAYOUT",
                details={"requested_amount": amount, "maximum_amount": settings.max_payout_amount},
            )

    def _allocate_fifo(self, payout: PayoutRequest, amount: int) -> None:
        """Earmark ``amount`` from AVAILABLE earnings, oldest first, splitting the last one."""
        entries = self.wallet_repository.available_earnings_fifo(payout.teacher_id)
        allocated = self.wallet_repository.allocated_by_entry(
            [entry.id for entry in entries],
            RESERVING_PAYOUT_STATUSES | {PayoutStatus.PAID},
        )
        remaining = amount
        for entry in entries:
            if remaining <= 0:
                break
            free = entry.net_amount - allocated.get(entry.id, 0)
            if free <= 0:
                continue
            take = min(free, remaining)
            self.repository.create_allocation(payout.id, entry.id, take)
            remaining -= take
        if remaining > 0:
            # Reversals can leave earnings that the balance no longer backs
            raise InsufficientBalanceException(amount, amount - remaining)

    @BaseService.measure_operation("request_payout")
    def request_payout(
        self, teacher_id: str, amount: int, method: PayoutMethod, account_ref: str
    ) -> PayoutRequest:
        self._validate_amount(amount)
        if not self.teacher_repository.get_by_id(teacher_id, load_relationships=False):
            raise NotFoundException(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")

        with self.wallet_service.locked_wallet(teacher_id, busy_code="PAYOUT_ALLOCATION_IN_PROGRESS"):
            available = self.wallet_service.balance(teacher_id)["available_amount"]
            if amount > available:
                raise InsufficientBalanceException(amount, max(available, 0))

            payout = self.repository.create(
                teacher_id=teacher_id,
                amount=amount,
                method=method,
                account_ref=account_ref,
                status=PayoutStatus.PENDING,
            )
            self._allocate_fifo(payout, amount)
        self.db.refresh(payout)

        self.log_operation(
            "request_payout", teacher_id=teacher_id, payout_id=payout.id, amount=amount
        )
        self._after_transition(payout)
        return payout

    @BaseService.measure_operation("approve")
    def approve(self, payout_id: str, actor_id: str) -> PayoutRequest:
        with self.transaction():
            payout = self._get_payout(payout_id, for_update=True)
            payout.transition_to(PayoutStatus.APPROVED)
            payout.approved_at = datetime.now(timezone.utc)
            payout.approved_by_id = actor_id

        self.log_operation("approve_payout", payout_id=payout_id, actor_id=actor_id)
        try:
            self._submit_to_rail(payout.id)
        except Exception as exc:
            # Stays APPROVED; operators can resubmit from the admin side
            logger.error(
                "payout_rail_submit_failed",
                extra={"payout_id": payout.id, "error": str(exc)},
            )
        self._after_transition(payout)
        return payout

    @BaseService.measure_operation("reject")
    def reject(self, payout_id: str, reason: str, actor_id: Optional[str] = None) -> PayoutRequest:
        with self.transaction():
            payout = self._get_payout(payout_id, for_update=True)
            payout.transition_to(PayoutStatus.REJECTED)
            payout.failure_reason = reason
            payout.processed_at = datetime.now(timezone.utc)

        self.log_operation("reject_payout", payout_id=payout_id, actor_id=actor_id)
        self._after_transition(payout)
        return payout

    @BaseService.measure_operation("on_paid")
    def on_paid(self, payout_id: str, external_ref: Optional[str] = None) -> PayoutRequest:
        """Rail confirmed the transfer. Replays of a PAID outcome change nothing."""
        with self.transaction():
            payout = self._get_payout(payout_id, for_update=True)
            if payout.status == PayoutStatus.PAID:
                logger.info("Ignoring replayed paid outcome", extra={"payout_id": payout_id})
                return payout
            payout.transition_to(PayoutStatus.PAID)
            payout.processed_at = datetime.now(timezone.utc)
            payout.external_ref = external_ref or payout.external_ref
            self.repository.flush()

            entries = {
                allocation.wallet_entry_id: allocation.wallet_entry
                for allocation in payout.allocations
            }
            paid_out = self.wallet_repository.allocated_by_entry(entries, {PayoutStatus.PAID})
            fully_paid = [
                entry_id
                for entry_id, entry in entries.items()
                if paid_out.get(entry_id, 0) >= entry.net_amount
            ]
            marked = self.wallet_repository.transition_status(
                fully_paid, WalletEntryStatus.AVAILABLE, WalletEntryStatus.PAID
            )

        self.log_operation("payout_paid", payout_id=payout_id, entries_paid=marked)
        self._after_transition(payout)
        return payout

    @BaseService.measure_operation("on_failed")
    def on_failed(self, payout_id: str, reason: str) -> PayoutRequest:
        """Rail rejected the transfer; the allocation is released by the status change."""
        with self.transaction():
            payout = self._get_payout(payout_id, for_update=True)
            if payout.status == PayoutStatus.FAILED:
                logger.info("Ignoring replayed failed outcome", extra={"payout_id": payout_id})
                return payout
            payout.transition_to(PayoutStatus.FAILED)
            payout.failure_reason = reason
            payout.processed_at = datetime.now(timezone.utc)

        self.log_operation("payout_failed", payout_id=payout_id, reason=reason)
        self._after_transition(payout)
        return payout

    def get(self, payout_id: str, teacher_id: Optional[str] = None) -> PayoutRequest:
        payout = self._get_payout(payout_id)
        if teacher_id and payout.teacher_id != teacher_id:
            raise ForbiddenException("You can only view your own payout requests")
        return payout

    def list_payouts(
        self,
        teacher_id: str,
        status: Optional[PayoutStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[PayoutRequest], int]:
        return self.repository.list_for_teacher(
            teacher_id, status=status, page=page, per_page=per_page
        )
