# backend/tutorhub/tasks/beat_schedule.py
"""
Celery Beat schedule for TutorHub.

Both periodic jobs are idempotent, so a late, skipped or overlapping run
only delays work; it never duplicates it.
"""

from datetime import timedelta
from typing import Any, Dict

from tutorhub.core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return {
        "complete-finished-bookings": {
            "task": "tutorhub.tasks.wallet_tasks.complete_finished_bookings",
            "schedule": timedelta(minutes=settings.booking_completion_interval_minutes),
            "options": {
                "queue": "ledger",
                "priority": 6,
            },
        },
        "sweep-wallet-entries": {
            "task": "tutorhub.tasks.wallet_tasks.sweep_wallet_entries",
            "schedule": timedelta(minutes=settings.wallet_sweep_interval_minutes),
            "options": {
                "queue": "ledger",
                "priority": 5,
            },
        },
    }
