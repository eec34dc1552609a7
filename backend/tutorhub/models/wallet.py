# backend/tutorhub/models/wallet.py
"""
Teacher wallet ledger and payout requests.

WalletEntry rows are append-only: apart from ``status`` nothing changes
after insert, and corrections are REVERSAL rows carrying negated amounts.
All money is integer minor units. ``amount`` is the gross lesson price and
``amount - commission`` is the net credited to the teacher.

PayoutAllocation rows tie a payout request to the slices of AVAILABLE
entries it reserved, so two requests can never spend the same funds.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional

from sqlalchemy import (
    CheckConstraint,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..core.exceptions import StateTransitionException
from ..database import Base
from .types import TimestampMixin, UTCDateTime, utcnow

if TYPE_CHECKING:
    from .booking import Booking


class WalletEntryStatus(str, Enum):
    PENDING = "PENDING"  # Inside the hold period
    AVAILABLE = "AVAILABLE"  # Withdrawable
    PAID = "PAID"  # Fully paid out


class WalletEntryType(str, Enum):
    EARNING = "EARNING"
    REVERSAL = "REVERSAL"


class PayoutStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class PayoutMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    UZUM_BANK = "uzum_bank"
    CLICK = "click"


# Payout statuses whose allocations still hold funds out of the available balance
RESERVING_PAYOUT_STATUSES: FrozenSet[PayoutStatus] = frozenset(
    {PayoutStatus.PENDING, PayoutStatus.APPROVED}
)

PAYOUT_TRANSITIONS: Dict[PayoutStatus, FrozenSet[PayoutStatus]] = {
    PayoutStatus.PENDING: frozenset(
        {PayoutStatus.APPROVED, PayoutStatus.REJECTED, PayoutStatus.FAILED}
    ),
    PayoutStatus.APPROVED: frozenset({PayoutStatus.PAID, PayoutStatus.FAILED}),
    PayoutStatus.PAID: frozenset(),
    PayoutStatus.REJECTED: frozenset(),
    PayoutStatus.FAILED: frozenset(),
}


def _enum_column(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


class WalletEntry(Base):
    """One ledger line for a completed booking (or its reversal)."""

    __tablename__ = "wallet_entries"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    teacher_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teacher_profiles.id"), nullable=False
    )
    booking_id: Mapped[str] = mapped_column(String(26), ForeignKey("bookings.id"), nullable=False)
    entry_type: Mapped[WalletEntryType] = mapped_column(
        _enum_column(WalletEntryType, "wallet_entry_type"),
        nullable=False,
        default=WalletEntryType.EARNING,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    commission: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[WalletEntryStatus] = mapped_column(
        _enum_column(WalletEntryStatus, "wallet_entry_status"),
        nullable=False,
        default=WalletEntryStatus.PENDING,
    )
    available_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    reverses_entry_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("wallet_entries.id"), nullable=True, unique=True
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    booking: Mapped["Booking"] = relationship("Booking")
    allocations: Mapped[List["PayoutAllocation"]] = relationship(
        "PayoutAllocation", back_populates="wallet_entry"
    )

    __table_args__ = (
        # One earning and at most one reversal per booking
        UniqueConstraint("booking_id", "entry_type", name="uq_wallet_entries_booking_type"),
        CheckConstraint(
            "(entry_type = 'EARNING' AND amount >= 0 AND commission >= 0 AND reverses_entry_id IS NULL)"
            " OR (entry_type = 'REVERSAL' AND amount <= 0 AND commission <= 0"
            " AND reverses_entry_id IS NOT NULL)",
            name="ck_wallet_entries_sign",
        ),
        Index("idx_wallet_entries_teacher_status", "teacher_id", "status", "available_at"),
        Index("idx_wallet_entries_status_available_at", "status", "available_at"),
    )

    @property
    def net_amount(self) -> int:
        return self.amount - self.commission

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<WalletEntry {self.id} {self.entry_type.value} teacher={self.teacher_id} "
            f"net={self.net_amount} {self.status.value}>"
        )


class PayoutRequest(TimestampMixin, Base):
    """A teacher's claim against their AVAILABLE balance."""

    __tablename__ = "payout_requests"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    teacher_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teacher_profiles.id"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[PayoutMethod] = mapped_column(
        _enum_column(PayoutMethod, "payout_method"), nullable=False
    )
    account_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[PayoutStatus] = mapped_column(
        _enum_column(PayoutStatus, "payout_status"),
        nullable=False,
        default=PayoutStatus.PENDING,
        index=True,
    )
    requested_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    approved_by_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    allocations: Mapped[List["PayoutAllocation"]] = relationship(
        "PayoutAllocation", back_populates="payout_request", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payout_requests_amount_positive"),
        Index("idx_payout_requests_teacher_status", "teacher_id", "status"),
    )

    @property
    def allocated_entry_ids(self) -> List[str]:
        return [allocation.wallet_entry_id for allocation in self.allocations]

    def transition_to(self, target: PayoutStatus) -> None:
        current = PayoutStatus(self.status)
        if target not in PAYOUT_TRANSITIONS[current]:
            raise StateTransitionException("payout request", current.value, target.value)
        self.status = target


class PayoutAllocation(Base):
    """The slice of one wallet entry reserved by a payout request."""

    __tablename__ = "payout_allocations"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, default=lambda: str(ulid.ULID())
    )
    payout_request_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("payout_requests.id", ondelete="CASCADE"), nullable=False
    )
    wallet_entry_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("wallet_entries.id"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    payout_request: Mapped[PayoutRequest] = relationship(
        "PayoutRequest", back_populates="allocations"
    )
    wallet_entry: Mapped[WalletEntry] = relationship("WalletEntry", back_populates="allocations")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payout_allocations_amount_positive"),
        UniqueConstraint(
            "payout_request_id", "wallet_entry_id", name="uq_payout_allocations_request_entry"
        ),
        Index("idx_payout_allocations_entry", "wallet_entry_id"),
    )
