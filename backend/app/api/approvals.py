"""Approver inbox endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Query
from fastapi_pagination import paginate

from app.api.deps import APPROVER_DEP, SESSION_DEP
from app.schemas.pagination import DefaultLimitOffsetPage
from app.schemas.requests import RequestListItem, to_list_item
from app.services.requests import list_visible_requests
from app.services.workflow.visibility import Category

if TYPE_CHECKING:
    from fastapi_pagination.limit_offset import LimitOffsetPage
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import AuthContext

router = APIRouter(prefix="/approvals", tags=["approvals"])
CATEGORY_QUERY = Query(default="pending", description="Dashboard category to keep.")


@router.get("", response_model=DefaultLimitOffsetPage[RequestListItem])
async def list_approvals(
    category: Category | None = CATEGORY_QUERY,
    session: AsyncSession = SESSION_DEP,
    auth: AuthContext = APPROVER_DEP,
) -> LimitOffsetPage[RequestListItem]:
    """Requests in the approver's inbox, by category (pending by default)."""
    items = await list_visible_requests(session, user=auth.user, category=category)
    return paginate(items, transformer=lambda page: [to_list_item(item) for item in page])
