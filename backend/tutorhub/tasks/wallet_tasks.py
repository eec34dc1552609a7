"""
Periodic ledger jobs.

``complete_finished_bookings`` closes lessons whose end time has passed and
records their earnings; ``sweep_wallet_entries`` matures earnings whose
hold period is over. Each opens its own session.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from tutorhub.database import get_db_session
from tutorhub.services.booking_service import BookingService
from tutorhub.services.wallet_service import WalletService
from tutorhub.tasks.celery_app import BaseTask
from tutorhub.tasks.task_types import typed_task

logger = logging.getLogger(__name__)


@typed_task(
    base=BaseTask,
    name="tutorhub.tasks.wallet_tasks.complete_finished_bookings",
    bind=True,
    max_retries=3,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def complete_finished_bookings(self: BaseTask) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    with get_db_session() as db:
        completed = BookingService(db).complete_due_bookings(now)
    logger.info(f"Completed {completed} finished bookings")
    return {"completed": completed, "processed_at": now.isoformat()}


@typed_task(
    base=BaseTask,
    name="tutorhub.tasks.wallet_tasks.sweep_wallet_entries",
    bind=True,
    max_retries=3,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def sweep_wallet_entries(self: BaseTask) -> Dict[str, Any]:
    now = datetime.now(timezone.utc)
    with get_db_session() as db:
        promoted = WalletService(db).sweep(now)
    logger.info(f"Promoted {promoted} wallet entries to AVAILABLE")
    return {"promoted": promoted, "processed_at": now.isoformat()}
