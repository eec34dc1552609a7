"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ...events import EventPublisher
from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.payout_service import PayoutService
from ...services.slot_service import SlotService
from ...services.wallet_service import WalletService
from .database import get_db


@lru_cache(maxsize=1)
def get_event_publisher() -> EventPublisher:
    """Process-wide publisher; it holds no per-request state."""
    return EventPublisher()


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_slot_service(db: Session = Depends(get_db)) -> SlotService:
    return SlotService(db)


def get_wallet_service(db: Session = Depends(get_db)) -> WalletService:
    return WalletService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> BookingService:
    """Get BookingService instance with proper dependencies."""
    return BookingService(db, event_publisher=event_publisher)


def get_payout_service(
    db: Session = Depends(get_db),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> PayoutService:
    return PayoutService(db, event_publisher=event_publisher)
