"""
Notification dispatch for domain events.

Delivery channels are owned by the notification platform; this worker only
receives the event and logs the hand-off.
"""

import logging
from typing import Any, Dict

from tutorhub.tasks.celery_app import BaseTask
from tutorhub.tasks.task_types import typed_task

logger = logging.getLogger(__name__)


@typed_task(
    base=BaseTask,
    name="tutorhub.tasks.notification_tasks.dispatch_notification",
    bind=True,
    max_retries=3,
    retry_backoff=True,
)
def dispatch_notification(self: BaseTask, event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    logger.info(
        "Dispatching notification",
        extra={"event_type": event_type, "payload_keys": sorted(payload)},
    )
    return {"event_type": event_type, "dispatched": True}
