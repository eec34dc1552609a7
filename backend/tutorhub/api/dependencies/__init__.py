"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import (
    ensure_teacher_owner,
    get_current_principal,
    get_current_teacher,
    require_role,
)
from .database import get_db
from .services import (
    get_availability_service,
    get_booking_service,
    get_event_publisher,
    get_payout_service,
    get_slot_service,
    get_wallet_service,
)

__all__ = [
    # Auth
    "get_current_principal",
    "get_current_teacher",
    "require_role",
    "ensure_teacher_owner",
    # Database
    "get_db",
    # Services
    "get_event_publisher",
    "get_availability_service",
    "get_slot_service",
    "get_booking_service",
    "get_wallet_service",
    "get_payout_service",
]
