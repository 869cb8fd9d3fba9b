"""Redis persistence for workflow notification events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from app.core.config import settings
from app.core.logging import get_logger
from app.services.queue import QueuedTask, enqueue_task
from app.services.queue import requeue_if_failed as generic_requeue_if_failed

logger = get_logger(__name__)
TASK_TYPE = "workflow_notification"


@dataclass(frozen=True)
class WorkflowNotification:
    """A request lifecycle event addressed to roles and users."""

    event_type: str  # request_created | request_transitioned | query_raised | query_answered
    request_id: UUID
    request_number: str
    target_roles: list[str] = field(default_factory=list)
    target_user_ids: list[UUID] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0


def _task_from_notification(notification: WorkflowNotification) -> QueuedTask:
    return QueuedTask(
        task_type=TASK_TYPE,
        payload={
            "event_type": notification.event_type,
            "request_id": str(notification.request_id),
            "request_number": notification.request_number,
            "target_roles": list(notification.target_roles),
            "target_user_ids": [str(uid) for uid in notification.target_user_ids],
            "payload": notification.payload,
        },
        created_at=notification.created_at,
        attempts=notification.attempts,
    )


def decode_notification_task(task: QueuedTask) -> WorkflowNotification:
    """Rebuild a `WorkflowNotification` from its queue envelope."""
    if task.task_type != TASK_TYPE:
        raise ValueError(f"Unexpected task_type={task.task_type!r}; expected {TASK_TYPE!r}")

    body: dict[str, Any] = task.payload
    return WorkflowNotification(
        event_type=str(body["event_type"]),
        request_id=UUID(body["request_id"]),
        request_number=str(body.get("request_number", "")),
        target_roles=[str(role) for role in body.get("target_roles", [])],
        target_user_ids=[UUID(uid) for uid in body.get("target_user_ids", [])],
        payload=body.get("payload", {}),
        created_at=task.created_at,
        attempts=task.attempts,
    )


def enqueue_notification(notification: WorkflowNotification) -> bool:
    """Push a notification onto the Redis queue; failures are logged, not raised."""
    try:
        enqueued = enqueue_task(
            _task_from_notification(notification),
            settings.rq_queue_name,
            redis_url=settings.rq_redis_url,
        )
    except Exception as exc:
        logger.warning(
            "workflow.notification.enqueue_failed",
            extra={
                "event_type": notification.event_type,
                "request_id": str(notification.request_id),
                "error": str(exc),
            },
        )
        return False
    if enqueued:
        logger.info(
            "workflow.notification.enqueued",
            extra={
                "event_type": notification.event_type,
                "request_id": str(notification.request_id),
                "target_roles": notification.target_roles,
            },
        )
    return enqueued


def requeue_if_failed(
    notification: WorkflowNotification,
    *,
    delay_seconds: float = 0,
) -> bool:
    """Requeue a notification whose dispatch failed, up to the retry cap."""
    try:
        return generic_requeue_if_failed(
            _task_from_notification(notification),
            settings.rq_queue_name,
            max_retries=settings.rq_dispatch_max_retries,
            redis_url=settings.rq_redis_url,
            delay_seconds=delay_seconds,
        )
    except Exception as exc:
        logger.warning(
            "workflow.notification.requeue_failed",
            extra={
                "event_type": notification.event_type,
                "request_id": str(notification.request_id),
                "error": str(exc),
            },
        )
        return False
