# backend/tutorhub/models/__init__.py
"""
SQLAlchemy models for the tutoring marketplace.

Importing this package registers every table on ``Base.metadata``.
"""

from ..database import Base
from .availability import AvailabilityRule, AvailabilityRuleKind
from .booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus, BookingType
from .teacher import SubjectOffering, TeacherProfile
from .wallet import (
    RESERVING_PAYOUT_STATUSES,
    PayoutAllocation,
    PayoutMethod,
    PayoutRequest,
    PayoutStatus,
    WalletEntry,
    WalletEntryStatus,
    WalletEntryType,
)

__all__ = [
    "Base",
    "TeacherProfile",
    "SubjectOffering",
    "AvailabilityRule",
    "AvailabilityRuleKind",
    "Booking",
    "BookingStatus",
    "BookingType",
    "ACTIVE_BOOKING_STATUSES",
    "WalletEntry",
    "WalletEntryStatus",
    "WalletEntryType",
    "PayoutRequest",
    "PayoutStatus",
    "PayoutMethod",
    "PayoutAllocation",
    "RESERVING_PAYOUT_STATUSES",
]
