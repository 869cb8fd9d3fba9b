"""Workflow notification queueing and dispatch."""

from app.services.workflow_notifications.queue import (
    TASK_TYPE,
    WorkflowNotification,
    decode_notification_task,
    enqueue_notification,
)

__all__ = [
    "TASK_TYPE",
    "WorkflowNotification",
    "decode_notification_task",
    "enqueue_notification",
]
