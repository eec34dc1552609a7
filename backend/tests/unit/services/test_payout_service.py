"""PayoutService: FIFO allocation, balance reservation and rail outcomes."""

import pytest

from tutorhub.core.exceptions import (
    BelowMinimumPayoutException,
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    InsufficientBalanceException,
    StateTransitionException,
)
from tutorhub.core.teacher_lock import teacher_lock
from tutorhub.models.booking import Booking, BookingStatus
from tutorhub.models.wallet import PayoutMethod, PayoutStatus, WalletEntryStatus
from tutorhub.services.payout_service import PayoutService
from tutorhub.services.wallet_service import WalletService


@pytest.fixture
def teacher(make_teacher):
    return make_teacher()


@pytest.fixture
def offering(make_offering, teacher):
    return make_offering(teacher)


@pytest.fixture
def service(db, event_publisher, rail_calls) -> PayoutService:
    return PayoutService(db, event_publisher=event_publisher, rail_submitter=rail_calls.append)


@pytest.fixture
def wallet(db) -> WalletService:
    return WalletService(db)


@pytest.fixture
def request_payout(service, teacher):
    def _request(amount: int):
        return service.request_payout(teacher.id, amount, PayoutMethod.BANK_TRANSFER, "8600-1234-5678")

    return _request


def assert_balance_identity(balance):
    assert (
        balance["available_amount"] + balance["pending_amount"] + balance["paid_amount"]
        == balance["total_earnings"]
    )


class TestRequestPayout:
    def test_reserves_requested_amount(
        self, request_payout, wallet, teacher, offering, make_available_earning, event_sender
    ):
        make_available_earning(teacher, offering, 450_000)

        payout = request_payout(300_000)

        assert payout.status == PayoutStatus.PENDING
        assert sum(a.amount for a in payout.allocations) == 300_000
        balance = wallet.balance(teacher.id)
        assert balance["available_amount"] == 150_000
        assert balance["reserved_amount"] == 300_000
        assert_balance_identity(balance)
        assert event_sender.event_types == ["event:PayoutStatusChanged"]

    def test_allocates_oldest_entries_first_and_splits_the_last(
        self, request_payout, teacher, offering, make_available_earning
    ):
        oldest = make_available_earning(teacher, offering, 40_000, days_ago=20)
        middle = make_available_earning(teacher, offering, 40_000, days_ago=15)
        newest = make_available_earning(teacher, offering, 40_000, days_ago=10)

        payout = request_payout(60_000)

        allocated = {a.wallet_entry_id: a.amount for a in payout.allocations}
        assert allocated == {oldest.id: 40_000, middle.id: 20_000}
        assert newest.id not in allocated

    def test_second_request_uses_remaining_funds(
        self, request_payout, teacher, offering, make_available_earning
    ):
        entry = make_available_earning(teacher, offering, 120_000)
        request_payout(70_000)

        second = request_payout(50_000)

        assert [(a.wallet_entry_id, a.amount) for a in second.allocations] == [(entry.id, 50_000)]
        with pytest.raises(InsufficientBalanceException):
            request_payout(50_000)

    def test_below_minimum(self, request_payout, teacher, offering, make_available_earning):
        make_available_earning(teacher, offering, 450_000)
        with pytest.raises(BelowMinimumPayoutException):
            request_payout(5_000)

    def test_above_maximum(self, request_payout):
        with pytest.raises(BusinessRuleException) as exc_info:
            request_payout(10_000_001)
        assert exc_info.value.code == "ABOVE_MAXIMUM_PAYOUT"

    def test_insufficient_balance(self, request_payout, teacher, offering, make_available_earning):
        make_available_earning(teacher, offering, 60_000)
        with pytest.raises(InsufficientBalanceException) as exc_info:
            request_payout(100_000)
        assert exc_info.value.details == {"requested_amount": 100_000, "available_amount": 60_000}

    def test_pending_earnings_are_not_withdrawable(
        self, request_payout, wallet, teacher, offering, make_booking, fixed_now
    ):
        booking = make_booking(teacher, offering, fixed_now)
        booking.complete(at=fixed_now)
        wallet.record_earning(booking, completed_at=fixed_now)
        wallet.db.commit()

        with pytest.raises(InsufficientBalanceException):
            request_payout(50_000)

    def test_concurrent_allocation_is_refused(
        self, request_payout, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 450_000)
        with teacher_lock(teacher.id, "wallet"):
            with pytest.raises(ConflictException) as exc_info:
                request_payout(100_000)
        assert exc_info.value.code == "PAYOUT_ALLOCATION_IN_PROGRESS"

    def test_reversed_earnings_back_no_payout(
        self, service, request_payout, wallet, db, teacher, offering, make_available_earning
    ):
        reversed_entry = make_available_earning(teacher, offering, 100_000, days_ago=20)
        live = make_available_earning(teacher, offering, 100_000, days_ago=10)
        wallet.reverse_for_booking(reversed_entry.booking_id, "chargeback")

        payout = request_payout(100_000)

        assert {a.wallet_entry_id: a.amount for a in payout.allocations} == {live.id: 100_000}
        service.approve(payout.id, "admin-user")
        service.on_paid(payout.id)
        db.refresh(reversed_entry)
        db.refresh(live)
        assert live.status == WalletEntryStatus.PAID
        assert reversed_entry.status == WalletEntryStatus.AVAILABLE
        assert_balance_identity(wallet.balance(teacher.id))

    def test_earnings_of_cancelled_bookings_are_skipped(
        self, request_payout, db, teacher, offering, make_available_earning
    ):
        cancelled = make_available_earning(teacher, offering, 100_000, days_ago=20)
        live = make_available_earning(teacher, offering, 100_000, days_ago=10)
        db.get(Booking, cancelled.booking_id).status = BookingStatus.CANCELLED
        db.commit()

        payout = request_payout(100_000)

        assert {a.wallet_entry_id: a.amount for a in payout.allocations} == {live.id: 100_000}


class TestAdminDecisions:
    def test_approve_submits_to_rail(
        self, service, request_payout, teacher, offering, make_available_earning, rail_calls
    ):
        make_available_earning(teacher, offering, 100_000)
        payout = request_payout(100_000)

        approved = service.approve(payout.id, "admin-user")

        assert approved.status == PayoutStatus.APPROVED
        assert approved.approved_by_id == "admin-user"
        assert rail_calls == [payout.id]

    def test_rail_enqueue_failure_keeps_payout_approved(
        self, db, event_publisher, request_payout, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 100_000)
        payout = request_payout(100_000)

        def broken_rail(payout_id: str) -> None:
            raise ConnectionError("broker down")

        service = PayoutService(db, event_publisher=event_publisher, rail_submitter=broken_rail)
        assert service.approve(payout.id, "admin-user").status == PayoutStatus.APPROVED

    def test_reject_releases_reserved_funds(
        self, service, request_payout, wallet, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 450_000)
        payout = request_payout(300_000)

        rejected = service.reject(payout.id, "account mismatch")

        assert rejected.status == PayoutStatus.REJECTED
        assert rejected.failure_reason == "account mismatch"
        balance = wallet.balance(teacher.id)
        assert balance["available_amount"] == 450_000
        assert balance["reserved_amount"] == 0

    def test_approved_payout_cannot_be_rejected(
        self, service, request_payout, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 100_000)
        payout = request_payout(100_000)
        service.approve(payout.id, "admin-user")
        with pytest.raises(StateTransitionException):
            service.reject(payout.id, "too late")


class TestRailOutcomes:
    def test_paid_moves_reserved_to_paid(
        self, service, request_payout, wallet, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 450_000)
        payout = request_payout(300_000)
        service.approve(payout.id, "admin-user")

        paid = service.on_paid(payout.id, external_ref="rail-42")

        assert paid.status == PayoutStatus.PAID
        assert paid.external_ref == "rail-42"
        balance = wallet.balance(teacher.id)
        assert balance["available_amount"] == 150_000
        assert balance["paid_amount"] == 300_000
        assert balance["reserved_amount"] == 0
        assert_balance_identity(balance)

    def test_fully_paid_entries_are_marked_paid(
        self, service, request_payout, wallet, db, teacher, offering, make_available_earning
    ):
        full = make_available_earning(teacher, offering, 100_000, days_ago=20)
        partial = make_available_earning(teacher, offering, 100_000, days_ago=10)
        payout = request_payout(150_000)
        service.approve(payout.id, "admin-user")

        service.on_paid(payout.id)

        db.refresh(full)
        db.refresh(partial)
        assert full.status == WalletEntryStatus.PAID
        assert partial.status == WalletEntryStatus.AVAILABLE
        balance = wallet.balance(teacher.id)
        assert balance["available_amount"] == 50_000
        assert_balance_identity(balance)

    def test_paid_replay_changes_nothing(
        self, service, request_payout, teacher, offering, make_available_earning, event_sender
    ):
        make_available_earning(teacher, offering, 100_000)
        payout = request_payout(100_000)
        service.approve(payout.id, "admin-user")
        service.on_paid(payout.id)
        published = len(event_sender.sent)

        again = service.on_paid(payout.id)

        assert again.status == PayoutStatus.PAID
        assert len(event_sender.sent) == published

    def test_paid_before_approval_is_invalid(
        self, service, request_payout, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 100_000)
        payout = request_payout(100_000)
        with pytest.raises(StateTransitionException):
            service.on_paid(payout.id)

    def test_failed_releases_funds(
        self, service, request_payout, wallet, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 100_000)
        payout = request_payout(100_000)
        service.approve(payout.id, "admin-user")

        failed = service.on_failed(payout.id, "card closed")

        assert failed.status == PayoutStatus.FAILED
        assert wallet.balance(teacher.id)["available_amount"] == 100_000
        assert service.on_failed(payout.id, "card closed").status == PayoutStatus.FAILED


class TestReads:
    def test_owner_check(self, service, request_payout, teacher, offering, make_available_earning):
        make_available_earning(teacher, offering, 100_000)
        payout = request_payout(100_000)

        assert service.get(payout.id, teacher_id=teacher.id).id == payout.id
        with pytest.raises(ForbiddenException):
            service.get(payout.id, teacher_id="01J00000000000000000000000")

    def test_list_filters_by_status(
        self, service, request_payout, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 200_000)
        first = request_payout(100_000)
        request_payout(100_000)
        service.reject(first.id, "duplicate")

        pending, total = service.list_payouts(teacher.id, status=PayoutStatus.PENDING)

        assert total == 1
        assert pending[0].status == PayoutStatus.PENDING
