"""Celery beat wiring for the periodic ledger jobs."""

from datetime import timedelta

from tutorhub.core.config import settings
from tutorhub.tasks.beat_schedule import get_beat_schedule
from tutorhub.tasks.celery_app import celery_app


class TestBeatSchedule:
    def test_jobs_point_at_registered_tasks(self):
        schedule = get_beat_schedule()
        registered = set(celery_app.tasks.keys())

        for entry in schedule.values():
            assert entry["task"] in registered
            assert entry["options"]["queue"] == "ledger"

    def test_intervals_follow_settings(self):
        schedule = get_beat_schedule()
        assert schedule["sweep-wallet-entries"]["schedule"] == timedelta(
            minutes=settings.wallet_sweep_interval_minutes
        )
        assert schedule["complete-finished-bookings"]["schedule"] == timedelta(
            minutes=settings.booking_completion_interval_minutes
        )

    def test_task_routes_cover_every_module(self):
        routes = celery_app.conf.task_routes
        assert routes["tutorhub.tasks.wallet_tasks.*"]["queue"] == "ledger"
        assert routes["tutorhub.tasks.payout_tasks.*"]["queue"] == "payments"
        assert routes["tutorhub.tasks.notification_tasks.*"]["queue"] == "notifications"
