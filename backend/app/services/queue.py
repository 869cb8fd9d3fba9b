"""Redis list-backed task queue used for background notification delivery.

Ready tasks live in a Redis list; retries with a delay wait in a companion
sorted set (scored by due time) and are moved onto the list when due.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

import redis

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_DELAYED_SUFFIX = ":delayed"
_DRAIN_BATCH_SIZE = 100


@dataclass(frozen=True)
class QueuedTask:
    """Envelope stored on the queue for every task type."""

    task_type: str
    payload: dict[str, Any]
    created_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_type": self.task_type,
                "payload": self.payload,
                "created_at": self.created_at.isoformat(),
                "attempts": self.attempts,
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> QueuedTask:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        body: dict[str, Any] = json.loads(raw)
        return cls(
            task_type=str(body["task_type"]),
            payload=body["payload"],
            created_at=datetime.fromisoformat(body["created_at"]),
            attempts=int(body.get("attempts", 0)),
        )


def _redis_client(redis_url: str | None = None) -> redis.Redis:
    return redis.Redis.from_url(redis_url or settings.rq_redis_url)


def _delayed_key(queue_name: str) -> str:
    return f"{queue_name}{_DELAYED_SUFFIX}"


def _promote_due_tasks(client: redis.Redis, queue_name: str) -> float | None:
    """Move due delayed tasks onto the ready list.

    Returns seconds until the next delayed task is due, or None when none wait.
    """
    delayed = _delayed_key(queue_name)
    now = time.time()
    due = cast(
        list[str | bytes],
        client.zrangebyscore(delayed, "-inf", now, start=0, num=_DRAIN_BATCH_SIZE),
    )
    if due:
        client.lpush(queue_name, *due)
        client.zrem(delayed, *due)
        logger.debug(
            "queue.delayed.promoted",
            extra={"queue_name": queue_name, "count": len(due)},
        )

    upcoming = cast(
        list[tuple[str | bytes, float]],
        client.zrangebyscore(delayed, now, "+inf", start=0, num=1, withscores=True),
    )
    if not upcoming:
        return None
    return max(0.0, float(upcoming[0][1]) - now)


def _enqueue_delayed(
    task: QueuedTask,
    queue_name: str,
    delay_seconds: float,
    *,
    redis_url: str | None = None,
) -> bool:
    client = _redis_client(redis_url=redis_url)
    client.zadd(_delayed_key(queue_name), {task.to_json(): time.time() + delay_seconds})
    logger.info(
        "queue.task.delayed",
        extra={
            "task_type": task.task_type,
            "queue_name": queue_name,
            "delay_seconds": delay_seconds,
        },
    )
    return True


def enqueue_task(
    task: QueuedTask,
    queue_name: str,
    *,
    redis_url: str | None = None,
) -> bool:
    """Push a task onto the ready list. Returns False when Redis is unreachable."""
    try:
        _redis_client(redis_url=redis_url).lpush(queue_name, task.to_json())
    except redis.RedisError as exc:
        logger.warning(
            "queue.task.enqueue_failed",
            extra={"task_type": task.task_type, "queue_name": queue_name, "error": str(exc)},
        )
        return False
    logger.info(
        "queue.task.enqueued",
        extra={"task_type": task.task_type, "queue_name": queue_name, "attempt": task.attempts},
    )
    return True


def dequeue_task(
    queue_name: str,
    *,
    redis_url: str | None = None,
    block: bool = False,
    block_timeout: float = 0,
) -> QueuedTask | None:
    """Pop the oldest ready task, optionally blocking until one arrives."""
    client = _redis_client(redis_url=redis_url)
    raw: str | bytes | None
    if block:
        next_due = _promote_due_tasks(client, queue_name)
        timeout = max(0.0, float(block_timeout))
        if next_due is not None:
            timeout = min(timeout, next_due) if timeout else next_due
        popped = cast(
            tuple[bytes | str, bytes | str] | None,
            client.brpop([queue_name], timeout=timeout),
        )
        raw = popped[1] if popped is not None else None
    else:
        raw = cast(str | bytes | None, client.rpop(queue_name))
    if raw is None:
        _promote_due_tasks(client, queue_name)
        return None
    try:
        return QueuedTask.from_json(raw)
    except (KeyError, TypeError, ValueError):
        logger.error(
            "queue.task.decode_failed",
            extra={"queue_name": queue_name, "raw_payload": str(raw)},
        )
        raise


def requeue_if_failed(
    task: QueuedTask,
    queue_name: str,
    *,
    max_retries: int,
    redis_url: str | None = None,
    delay_seconds: float = 0,
) -> bool:
    """Requeue a failed task with one more attempt recorded.

    Returns False once `max_retries` is exhausted.
    """
    retried = QueuedTask(
        task_type=task.task_type,
        payload=task.payload,
        created_at=task.created_at,
        attempts=task.attempts + 1,
    )
    if retried.attempts > max_retries:
        logger.warning(
            "queue.task.dropped",
            extra={
                "task_type": task.task_type,
                "queue_name": queue_name,
                "attempts": retried.attempts,
            },
        )
        return False
    if delay_seconds > 0:
        return _enqueue_delayed(retried, queue_name, delay_seconds, redis_url=redis_url)
    return enqueue_task(retried, queue_name, redis_url=redis_url)
