# backend/tutorhub/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import (
    availability,
    bookings,
    health,
    payouts,
    prometheus,
    slots,
    wallet,
    webhooks_payouts,
)

__all__ = [
    "availability",
    "bookings",
    "health",
    "payouts",
    "prometheus",
    "slots",
    "wallet",
    "webhooks_payouts",
]
