"""Tutoring marketplace backend: scheduling, bookings, teacher wallet and payouts."""

__version__ = "0.1.0"
