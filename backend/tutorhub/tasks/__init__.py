# backend/tutorhub/tasks/__init__.py
"""
Celery tasks package for TutorHub.

This package contains the asynchronous tasks:
- Booking completion and wallet maturation (periodic)
- Payment rail submission
- Notification dispatch
"""

from tutorhub.tasks.celery_app import BaseTask, celery_app
from tutorhub.tasks.notification_tasks import dispatch_notification
from tutorhub.tasks.payout_tasks import submit_payout_to_rail
from tutorhub.tasks.wallet_tasks import complete_finished_bookings, sweep_wallet_entries

__all__ = [
    "BaseTask",
    "celery_app",
    "complete_finished_bookings",
    "dispatch_notification",
    "submit_payout_to_rail",
    "sweep_wallet_entries",
]
