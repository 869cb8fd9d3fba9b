"""Purchase request endpoints: listing, creation, detail, and actions."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, Query, Request, status
from fastapi_pagination import paginate

from app.api.deps import AUTH_DEP, SESSION_DEP, VISIBLE_REQUEST_DEP
from app.schemas.pagination import DefaultLimitOffsetPage
from app.schemas.requests import (
    ActionCreate,
    OriginalRejectorRead,
    QueryStatusRead,
    RequestCreate,
    RequestListItem,
    RequestRead,
    to_list_item,
)
from app.services.request_store import RequestStore
from app.services.requests import NewRequest, create_request, list_visible_requests
from app.services.workflow.actions import Actor, apply_action
from app.services.workflow.queries import (
    can_respond,
    is_dean_mediated,
    original_rejector,
    return_status,
)
from app.services.workflow.state import RequestState
from app.services.workflow.visibility import Category
from app.services.workflow.vocabulary import Status

if TYPE_CHECKING:
    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import AuthContext
    from app.models.purchase_requests import PurchaseRequest
    from app.services.workflow.visibility import VisibleRequest

router = APIRouter(prefix="/requests", tags=["requests"])
CATEGORY_QUERY = Query(default=None, description="Dashboard category to keep.")
STATUS_QUERY = Query(
    default=None,
    alias="status",
    description="Only requests currently at these statuses.",
)


@router.get("", response_model=DefaultLimitOffsetPage[RequestListItem])
async def list_requests(
    category: Category | None = CATEGORY_QUERY,
    statuses: list[Status] | None = STATUS_QUERY,
    session: AsyncSession = SESSION_DEP,
    auth: AuthContext = AUTH_DEP,
) -> LimitOffsetPage[RequestListItem]:
    """List requests visible to the caller, newest first."""
    items = await list_visible_requests(
        session,
        user=auth.user,
        category=category,
        statuses=statuses,
    )
    return paginate(items, transformer=lambda page: [to_list_item(item) for item in page])


@router.post("", response_model=RequestRead, status_code=status.HTTP_201_CREATED)
async def create(
    payload: RequestCreate,
    request: Request,
    session: AsyncSession = SESSION_DEP,
    auth: AuthContext = AUTH_DEP,
) -> RequestRead:
    """Open a new purchase request; it starts at manager review."""
    created = await create_request(
        session,
        user=auth.user,
        data=NewRequest(**payload.model_dump()),
        request=request,
    )
    return RequestRead.model_validate(created, from_attributes=True)


@router.get("/{request_id}", response_model=RequestListItem)
async def get_request(
    item: VisibleRequest[PurchaseRequest] = VISIBLE_REQUEST_DEP,
) -> RequestListItem:
    return to_list_item(item)


@router.post("/{request_id}/actions", response_model=RequestRead)
async def submit_action(
    request_id: UUID,
    payload: ActionCreate,
    session: AsyncSession = SESSION_DEP,
    auth: AuthContext = AUTH_DEP,
) -> RequestRead:
    """Apply an approval-workflow action as the caller."""
    updated = await apply_action(
        RequestStore(session),
        request_id,
        Actor(id=auth.user.id, role=auth.role, email=auth.user.email),
        payload.action,
        payload.to_payload(),
    )
    return RequestRead.model_validate(updated, from_attributes=True)


@router.get("/{request_id}/query", response_model=QueryStatusRead)
async def get_query_status(
    item: VisibleRequest[PurchaseRequest] = VISIBLE_REQUEST_DEP,
    auth: AuthContext = AUTH_DEP,
) -> QueryStatusRead:
    """Describe the open query round, if any, from the caller's point of view."""
    state = RequestState.from_record(item.request)
    rejector = original_rejector(state)
    return QueryStatusRead(
        pending_query=state.pending_query,
        query_level=state.query_level,
        can_respond=can_respond(state, auth.role, auth.user.id),
        is_dean_mediated=is_dean_mediated(state),
        original_rejector=(
            OriginalRejectorRead(
                role=rejector.role,
                name=rejector.name,
                actor_id=rejector.actor_id,
            )
            if rejector
            else None
        ),
        return_status=return_status(state) if state.pending_query else None,
    )
