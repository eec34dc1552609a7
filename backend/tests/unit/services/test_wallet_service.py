"""WalletService: earnings, maturation sweep, reversals and balance aggregation."""

from datetime import datetime, timedelta, timezone

import pytest

from tutorhub.core.config import settings
from tutorhub.core.exceptions import ConflictException, NotFoundException, ValidationException
from tutorhub.core.teacher_lock import teacher_lock
from tutorhub.models.booking import BookingStatus, BookingType
from tutorhub.models.wallet import WalletEntryStatus, WalletEntryType
from tutorhub.services.wallet_service import WalletService

UTC = timezone.utc
COMPLETED_AT = datetime(2030, 1, 7, 11, 0, tzinfo=UTC)


@pytest.fixture
def teacher(make_teacher):
    return make_teacher()


@pytest.fixture
def offering(make_offering, teacher):
    return make_offering(teacher, price_per_hour=50_000)


@pytest.fixture
def service(db) -> WalletService:
    return WalletService(db)


@pytest.fixture
def fifteen_percent(monkeypatch):
    monkeypatch.setattr(
        settings, "commission_rates", {"TRIAL": 0.15, "SINGLE": 0.15, "PACKAGE": 0.15}
    )


@pytest.fixture
def completed_booking(make_booking, teacher, offering):
    def _make(price: int = 50_000, **kwargs):
        return make_booking(
            teacher,
            offering,
            COMPLETED_AT - timedelta(hours=1),
            status=BookingStatus.COMPLETED,
            price=price,
            completed_at=COMPLETED_AT,
            **kwargs,
        )

    return _make


def assert_balance_identity(balance):
    assert (
        balance["available_amount"] + balance["pending_amount"] + balance["paid_amount"]
        == balance["total_earnings"]
    )


@pytest.mark.usefixtures("fifteen_percent")
class TestRecordEarning:
    def test_commission_and_hold_period(self, service, completed_booking):
        booking = completed_booking(50_000)

        entry = service.create_entry_for_booking(booking.id, COMPLETED_AT)

        assert entry.entry_type == WalletEntryType.EARNING
        assert entry.amount == 50_000
        assert entry.commission == 7_500
        assert entry.net_amount == 42_500
        assert entry.status == WalletEntryStatus.PENDING
        assert entry.available_at == COMPLETED_AT + timedelta(
            hours=settings.wallet_hold_period_hours
        )

    def test_one_earning_per_booking(self, service, completed_booking):
        booking = completed_booking()
        first = service.create_entry_for_booking(booking.id, COMPLETED_AT)
        second = service.create_entry_for_booking(booking.id, COMPLETED_AT)
        assert first.id == second.id

    def test_rate_depends_on_booking_type(self, service, completed_booking, monkeypatch):
        monkeypatch.setattr(
            settings, "commission_rates", {"TRIAL": 0.0, "SINGLE": 0.15, "PACKAGE": 0.15}
        )
        trial = completed_booking(booking_type=BookingType.TRIAL)
        entry = service.create_entry_for_booking(trial.id, COMPLETED_AT)
        assert entry.commission == 0

    def test_pending_earning_counts_as_pending_balance(self, service, completed_booking, teacher):
        service.create_entry_for_booking(completed_booking().id, COMPLETED_AT)

        balance = service.balance(teacher.id)

        assert balance["pending_amount"] == 42_500
        assert balance["available_amount"] == 0
        assert balance["total_earnings"] == 42_500
        assert_balance_identity(balance)

    def test_unknown_booking(self, service):
        with pytest.raises(NotFoundException):
            service.create_entry_for_booking("01J00000000000000000000000", COMPLETED_AT)


@pytest.mark.usefixtures("fifteen_percent")
class TestSweep:
    def test_promotes_only_matured_entries(self, service, completed_booking, teacher, make_booking, offering):
        service.create_entry_for_booking(completed_booking().id, COMPLETED_AT)
        later = make_booking(
            teacher,
            offering,
            COMPLETED_AT + timedelta(days=2),
            status=BookingStatus.COMPLETED,
            completed_at=COMPLETED_AT + timedelta(days=2),
        )
        service.create_entry_for_booking(later.id, COMPLETED_AT + timedelta(days=2))

        sweep_at = COMPLETED_AT + timedelta(hours=settings.wallet_hold_period_hours)
        promoted = service.sweep(sweep_at)

        assert promoted == 1
        balance = service.balance(teacher.id)
        assert balance["available_amount"] == 42_500
        assert balance["pending_amount"] == 42_500
        assert_balance_identity(balance)

    def test_sweep_is_idempotent(self, service, completed_booking):
        service.create_entry_for_booking(completed_booking().id, COMPLETED_AT)
        sweep_at = COMPLETED_AT + timedelta(days=30)

        assert service.sweep(sweep_at) == 1
        assert service.sweep(sweep_at) == 0

    def test_nothing_due(self, service, completed_booking):
        service.create_entry_for_booking(completed_booking().id, COMPLETED_AT)
        assert service.sweep(COMPLETED_AT) == 0


@pytest.mark.usefixtures("fifteen_percent")
class TestReversal:
    def test_reversal_of_pending_earning_cancels_pending_balance(
        self, service, completed_booking, teacher
    ):
        booking = completed_booking()
        service.create_entry_for_booking(booking.id, COMPLETED_AT)

        reversal = service.reverse_for_booking(booking.id, "refund")

        assert reversal.entry_type == WalletEntryType.REVERSAL
        assert reversal.amount == -50_000
        assert reversal.commission == -7_500
        assert reversal.status == WalletEntryStatus.PENDING
        balance = service.balance(teacher.id)
        assert balance["pending_amount"] == 0
        assert balance["total_earnings"] == 0
        assert_balance_identity(balance)

    def test_reversed_pending_entries_are_never_promoted_into_credit(
        self, service, completed_booking, teacher
    ):
        booking = completed_booking()
        service.create_entry_for_booking(booking.id, COMPLETED_AT)
        service.reverse_for_booking(booking.id, "refund")

        service.sweep(COMPLETED_AT + timedelta(days=30))

        balance = service.balance(teacher.id)
        assert balance["available_amount"] == 0
        assert balance["pending_amount"] == 0

    def test_reversal_of_available_earning_lowers_available(
        self, service, completed_booking, teacher
    ):
        booking = completed_booking()
        service.create_entry_for_booking(booking.id, COMPLETED_AT)
        service.sweep(COMPLETED_AT + timedelta(days=30))

        reversal = service.reverse_for_booking(booking.id)

        assert reversal.status == WalletEntryStatus.AVAILABLE
        balance = service.balance(teacher.id)
        assert balance["available_amount"] == 0
        assert_balance_identity(balance)

    def test_reversing_twice_returns_the_same_entry(self, service, completed_booking):
        booking = completed_booking()
        service.create_entry_for_booking(booking.id, COMPLETED_AT)
        first = service.reverse_for_booking(booking.id)
        second = service.reverse_for_booking(booking.id)
        assert first.id == second.id

    def test_reversal_without_earning(self, service, completed_booking):
        with pytest.raises(NotFoundException) as exc_info:
            service.reverse_for_booking(completed_booking().id)
        assert exc_info.value.code == "WALLET_ENTRY_NOT_FOUND"

    def test_reversal_for_unknown_booking(self, service):
        with pytest.raises(NotFoundException) as exc_info:
            service.reverse_for_booking("01J00000000000000000000000")
        assert exc_info.value.code == "BOOKING_NOT_FOUND"

    def test_reversal_refused_while_wallet_is_busy(self, service, teacher, completed_booking):
        booking = completed_booking()
        service.create_entry_for_booking(booking.id, COMPLETED_AT)

        with teacher_lock(teacher.id, "wallet"):
            with pytest.raises(ConflictException) as exc_info:
                service.reverse_for_booking(booking.id, "refund")

        assert exc_info.value.code == "WALLET_UPDATE_IN_PROGRESS"
        earning = service.repository.get_earning_for_booking(booking.id)
        assert service.repository.get_reversal_of(earning.id) is None


class TestListEntries:
    def test_paginates_and_filters_by_status(self, service, teacher, offering, make_available_earning, completed_booking):
        make_available_earning(teacher, offering, 10_000)
        make_available_earning(teacher, offering, 20_000)
        service.create_entry_for_booking(completed_booking().id, COMPLETED_AT)

        items, total = service.list_entries(teacher.id, page=1, per_page=2)
        assert total == 3
        assert len(items) == 2

        available, available_total = service.list_entries(
            teacher.id, status=WalletEntryStatus.AVAILABLE
        )
        assert available_total == 2
        assert {entry.status for entry in available} == {WalletEntryStatus.AVAILABLE}


class TestEarningsSummary:
    def test_totals_include_commission_and_reversals(
        self, service, fifteen_percent, completed_booking
    ):
        kept = completed_booking()
        refunded = completed_booking()
        service.create_entry_for_booking(kept.id, COMPLETED_AT)
        service.create_entry_for_booking(refunded.id, COMPLETED_AT)
        service.reverse_for_booking(refunded.id, "refund")

        summary = service.earnings_summary(kept.teacher_id)

        assert summary["total_earnings"] == 50_000
        assert summary["total_commission"] == 7_500
        assert summary["net_earnings"] == 42_500
        assert summary["total_transactions"] == 3
        assert summary["pending_amount"] == 42_500
        assert summary["available_amount"] == 0
        assert len(summary["recent_entries"]) == 3

    def test_date_range_is_inclusive_of_both_days(
        self, service, teacher, offering, make_available_earning
    ):
        make_available_earning(teacher, offering, 10_000, days_ago=20)
        middle = make_available_earning(teacher, offering, 20_000, days_ago=10)
        newest = make_available_earning(teacher, offering, 30_000, days_ago=2)

        summary = service.earnings_summary(
            teacher.id,
            start_date=(newest.created_at - timedelta(days=8)).date(),
            end_date=newest.created_at.date(),
        )

        assert summary["total_transactions"] == 2
        assert summary["net_earnings"] == 50_000
        assert [entry.id for entry in summary["recent_entries"]] == [newest.id, middle.id]

    def test_status_filter(self, service, teacher, offering, make_available_earning, completed_booking):
        make_available_earning(teacher, offering, 100_000)
        service.create_entry_for_booking(completed_booking().id, COMPLETED_AT)

        summary = service.earnings_summary(teacher.id, status=WalletEntryStatus.AVAILABLE)

        assert summary["total_transactions"] == 1
        assert summary["available_amount"] == 100_000
        assert summary["pending_amount"] == 0

    def test_end_before_start(self, service, teacher):
        with pytest.raises(ValidationException) as exc_info:
            service.earnings_summary(
                teacher.id, start_date=COMPLETED_AT.date(), end_date=COMPLETED_AT.date() - timedelta(days=1)
            )
        assert exc_info.value.code == "INVALID_DATE_RANGE"
