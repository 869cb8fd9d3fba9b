"""Worker-side handling of workflow notification tasks."""

from __future__ import annotations

from app.core.logging import get_logger
from app.services.queue import QueuedTask
from app.services.workflow_notifications.queue import (
    WorkflowNotification,
    decode_notification_task,
    requeue_if_failed,
)

logger = get_logger(__name__)


def _dispatch(notification: WorkflowNotification) -> None:
    # Delivery channels (email, chat) plug in here; the event is logged for now.
    logger.info(
        "workflow.notification.dispatch",
        extra={
            "event_type": notification.event_type,
            "request_id": str(notification.request_id),
            "request_number": notification.request_number,
            "target_roles": notification.target_roles,
            "target_user_ids": [str(uid) for uid in notification.target_user_ids],
            "status": notification.payload.get("status"),
        },
    )


async def process_notification_task(task: QueuedTask) -> None:
    _dispatch(decode_notification_task(task))


def requeue_notification_task(task: QueuedTask, *, delay_seconds: float = 0) -> bool:
    return requeue_if_failed(decode_notification_task(task), delay_seconds=delay_seconds)
