# backend/tutorhub/repositories/__init__.py
"""
Repository layer for data access, separating business logic from queries.

Usage:
    from tutorhub.repositories import RepositoryFactory

    # In a service:
    booking_repository = RepositoryFactory.create_booking_repository(db)
    overlapping = booking_repository.find_overlapping(teacher_id, start_at, end_at)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository, IRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .payout_repository import PayoutRepository
from .teacher_repository import TeacherRepository
from .wallet_repository import WalletRepository

__all__ = [
    "BaseRepository",
    "IRepository",
    "RepositoryFactory",
    "AvailabilityRepository",
    "BookingRepository",
    "PayoutRepository",
    "TeacherRepository",
    "WalletRepository",
]
