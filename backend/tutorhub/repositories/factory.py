# backend/tutorhub/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .booking_repository import BookingRepository
    from .payout_repository import PayoutRepository
    from .teacher_repository import TeacherRepository
    from .wallet_repository import WalletRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_teacher_repository(db: Session) -> "TeacherRepository":
        """Create repository for teacher profiles and the subject catalog."""
        from .teacher_repository import TeacherRepository

        return TeacherRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for availability rules."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for bookings and conflict queries."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_wallet_repository(db: Session) -> "WalletRepository":
        """Create repository for the teacher wallet ledger."""
        from .wallet_repository import WalletRepository

        return WalletRepository(db)

    @staticmethod
    def create_payout_repository(db: Session) -> "PayoutRepository":
        """Create repository for payout requests and allocations."""
        from .payout_repository import PayoutRepository

        return PayoutRepository(db)
