"""Request creation and per-viewer listing."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.logging import get_logger
from app.db import crud
from app.models.purchase_requests import PurchaseRequest
from app.services.audit import record_audit
from app.services.request_store import RequestFilter, RequestStore
from app.services.workflow.errors import ForbiddenActionError
from app.services.workflow.history import CreateEntry, dump_entry
from app.services.workflow.transitions import required_approvers
from app.services.workflow.visibility import filter_by_visibility
from app.services.workflow.vocabulary import Role, Status
from app.services.workflow_notifications import WorkflowNotification, enqueue_notification

if TYPE_CHECKING:
    from fastapi import Request
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.models.users import User
    from app.services.workflow.visibility import Category, VisibleRequest

logger = get_logger(__name__)

REQUEST_NUMBER_MIN = 100000
REQUEST_NUMBER_MAX = 999999
CREATE_NOTE = "Request created and forwarded to manager for review"
_NUMBER_ATTEMPTS = 10


@dataclass(frozen=True)
class NewRequest:
    """Requester-supplied fields for a new purchase request."""

    title: str
    purpose: str = ""
    college: str = ""
    department: str = ""
    cost_estimate: float = 0.0
    expense_category: str = ""
    sop_reference: str | None = None
    attachments: list[str] = field(default_factory=list)


def draw_request_number() -> str:
    return str(secrets.randbelow(REQUEST_NUMBER_MAX - REQUEST_NUMBER_MIN + 1) + REQUEST_NUMBER_MIN)


async def _unused_request_number(session: AsyncSession) -> str:
    for _ in range(_NUMBER_ATTEMPTS):
        number = draw_request_number()
        if await crud.get_by(session, PurchaseRequest, request_number=number) is None:
            return number
    raise RuntimeError("Could not allocate a unique request number")


async def create_request(
    session: AsyncSession,
    *,
    user: User,
    data: NewRequest,
    request: Request | None = None,
) -> PurchaseRequest:
    """Create a request at MANAGER_REVIEW on behalf of a requester."""
    if user.workflow_role != Role.REQUESTER:
        await record_audit(
            session,
            action="request.create.forbidden",
            actor_id=user.id,
            actor_role=user.role,
            target_type="purchase_request",
            request=request,
            payload={"title": data.title},
        )
        raise ForbiddenActionError("Only requesters can create purchase requests")

    store = RequestStore(session)
    for attempt in range(1, _NUMBER_ATTEMPTS + 1):
        entry = CreateEntry(
            actor_id=user.id,
            actor_role=Role.REQUESTER,
            new_status=Status.MANAGER_REVIEW,
            notes=CREATE_NOTE,
        )
        record = PurchaseRequest(
            request_number=await _unused_request_number(session),
            requester_id=user.id,
            title=data.title,
            purpose=data.purpose,
            college=data.college or (user.college or ""),
            department=data.department or (user.department or ""),
            cost_estimate=data.cost_estimate,
            expense_category=data.expense_category,
            sop_reference=data.sop_reference,
            attachments=list(data.attachments),
            status=Status.MANAGER_REVIEW.value,
            history=[dump_entry(entry)],
        )
        try:
            created = await store.create(record)
        except IntegrityError:
            # Another request claimed the same number between the check and the insert.
            await session.rollback()
            logger.info("request.number.collision", extra={"attempt": attempt})
            continue
        break
    else:
        raise RuntimeError("Could not allocate a unique request number")

    await record_audit(
        session,
        action="request.create",
        actor_id=user.id,
        actor_role=user.role,
        target_type="purchase_request",
        target_id=created.id,
        request=request,
        payload={"request_number": created.request_number},
    )
    logger.info(
        "request.created",
        extra={
            "request_id": str(created.id),
            "request_number": created.request_number,
            "cost_estimate": created.cost_estimate,
        },
    )
    if settings.workflow_notifications_enabled:
        enqueue_notification(
            WorkflowNotification(
                event_type="request_created",
                request_id=created.id,
                request_number=created.request_number,
                target_roles=sorted(r.value for r in required_approvers(Status.MANAGER_REVIEW)),
                target_user_ids=[user.id],
                payload={"status": created.status},
            ),
        )
    return created


async def list_visible_requests(
    session: AsyncSession,
    *,
    user: User,
    category: Category | None = None,
    statuses: list[Status] | None = None,
) -> list[VisibleRequest[PurchaseRequest]]:
    """Requests the user may see, newest first, with their visibility labels."""
    filters = RequestFilter(
        statuses=statuses,
        requester_id=user.id if user.workflow_role == Role.REQUESTER else None,
    )
    records = await RequestStore(session).list_all(filters)
    return filter_by_visibility(records, user.workflow_role, user.id, category)
