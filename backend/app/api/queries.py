"""Endpoints listing open query rounds awaiting the caller."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from app.api.deps import AUTH_DEP, SESSION_DEP
from app.schemas.requests import RequestListItem, to_list_item
from app.services.requests import list_visible_requests
from app.services.workflow.queries import can_respond
from app.services.workflow.state import RequestState

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import AuthContext

router = APIRouter(prefix="/queries", tags=["queries"])


@router.get("", response_model=list[RequestListItem])
async def list_pending_queries(
    session: AsyncSession = SESSION_DEP,
    auth: AuthContext = AUTH_DEP,
) -> list[RequestListItem]:
    """Requests whose open query the caller is expected to answer."""
    items = await list_visible_requests(session, user=auth.user)
    return [
        to_list_item(item)
        for item in items
        if can_respond(RequestState.from_record(item.request), auth.role, auth.user.id)
    ]
