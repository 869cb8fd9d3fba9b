# ruff: noqa: INP001
"""Notification envelopes and the queue worker that drains them."""

from __future__ import annotations

from uuid import uuid4

import pytest

from app.core.config import settings
from app.services import queue_worker
from app.services.queue import QueuedTask
from app.services.queue_worker import _TASK_HANDLERS, flush_queue, retry_delay
from app.services.workflow_notifications import (
    TASK_TYPE,
    WorkflowNotification,
    decode_notification_task,
    enqueue_notification,
)
from app.services.workflow_notifications import queue as notification_queue


def _notification(**overrides: object) -> WorkflowNotification:
    values: dict[str, object] = {
        "event_type": "query_raised",
        "request_id": uuid4(),
        "request_number": "654321",
        "target_roles": ["requester"],
        "target_user_ids": [uuid4()],
        "payload": {"status": "submitted", "previous_status": "vp_approval"},
    }
    values.update(overrides)
    return WorkflowNotification(**values)  # type: ignore[arg-type]


def test_worker_registers_notification_handler() -> None:
    assert TASK_TYPE in _TASK_HANDLERS


def test_enqueue_notification_wraps_queue_envelope(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: list[tuple[QueuedTask, str]] = []

    def _fake_enqueue(task: QueuedTask, queue_name: str, *, redis_url: str | None = None) -> bool:
        captured.append((task, queue_name))
        return True

    monkeypatch.setattr(notification_queue, "enqueue_task", _fake_enqueue)
    notification = _notification()

    assert enqueue_notification(notification) is True
    [(task, queue_name)] = captured
    assert queue_name == settings.rq_queue_name
    assert task.task_type == TASK_TYPE
    assert task.payload["request_id"] == str(notification.request_id)
    assert decode_notification_task(task) == notification


def test_enqueue_notification_never_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken_enqueue(*args: object, **kwargs: object) -> bool:
        raise RuntimeError("redis exploded")

    monkeypatch.setattr(notification_queue, "enqueue_task", _broken_enqueue)

    assert enqueue_notification(_notification()) is False


def test_decode_rejects_foreign_task_type() -> None:
    task = QueuedTask(task_type="other", payload={}, created_at=_notification().created_at)
    with pytest.raises(ValueError, match="Unexpected task_type"):
        decode_notification_task(task)


def test_retry_delay_is_capped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "rq_dispatch_retry_base_seconds", 2.0)
    monkeypatch.setattr(settings, "rq_dispatch_retry_max_seconds", 10.0)

    assert 2.0 <= retry_delay(0) <= 2.2
    assert 8.0 <= retry_delay(2) <= 8.8
    assert 10.0 <= retry_delay(6) <= 11.0


@pytest.mark.asyncio
async def test_flush_queue_dispatches_and_requeues_failures(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ok = notification_queue._task_from_notification(_notification())
    broken = notification_queue._task_from_notification(_notification(event_type="boom"))
    pending = [ok, broken]
    requeued: list[tuple[str, float]] = []

    def _fake_dequeue(queue_name: str, **kwargs: object) -> QueuedTask | None:
        return pending.pop(0) if pending else None

    async def _fake_process(task: QueuedTask) -> None:
        if decode_notification_task(task).event_type == "boom":
            raise RuntimeError("delivery failed")

    def _fake_requeue(task: QueuedTask, delay: float) -> bool:
        requeued.append((decode_notification_task(task).event_type, delay))
        return True

    monkeypatch.setattr(queue_worker, "dequeue_task", _fake_dequeue)
    monkeypatch.setattr(settings, "rq_dispatch_throttle_seconds", 0)
    monkeypatch.setitem(
        _TASK_HANDLERS,
        TASK_TYPE,
        queue_worker._TaskHandler(handler=_fake_process, requeue=_fake_requeue),
    )

    processed = await flush_queue()

    assert processed == 1
    assert [event for event, _ in requeued] == ["boom"]
    assert requeued[0][1] > 0
