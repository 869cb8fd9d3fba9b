"""Reusable FastAPI dependencies for auth and request access.

Routers compose these instead of re-implementing role checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import Depends

from app.core.auth import AuthContext, get_auth_context
from app.db.session import get_session
from app.services.request_store import RequestStore
from app.services.workflow.errors import ForbiddenActionError
from app.services.workflow.state import RequestState
from app.services.workflow.visibility import VisibleRequest, visibility
from app.services.workflow.vocabulary import Role

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.models.purchase_requests import PurchaseRequest

AUTH_DEP = Depends(get_auth_context)
SESSION_DEP = Depends(get_session)


def require_approver(auth: AuthContext = AUTH_DEP) -> AuthContext:
    """Reject requesters; every other role reviews requests."""
    if auth.role == Role.REQUESTER:
        raise ForbiddenActionError("Approver inbox is not available to requesters")
    return auth


async def get_visible_request(
    request_id: UUID,
    session: AsyncSession = SESSION_DEP,
    auth: AuthContext = AUTH_DEP,
) -> VisibleRequest[PurchaseRequest]:
    """Load a request the caller may see (404 unknown, 403 hidden)."""
    record = await RequestStore(session).get(request_id)
    result = visibility(RequestState.from_record(record), auth.role, auth.user.id)
    if not result.can_see:
        raise ForbiddenActionError("You do not have access to this request")
    return VisibleRequest(request=record, visibility=result)


APPROVER_DEP = Depends(require_approver)
VISIBLE_REQUEST_DEP = Depends(get_visible_request)
