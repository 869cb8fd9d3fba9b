"""Read-only lookups into the transition table."""

from __future__ import annotations

from fastapi import APIRouter

from app.schemas.workflow import ApproversRead
from app.services.workflow.transitions import required_approvers
from app.services.workflow.vocabulary import Status, display_name

router = APIRouter(prefix="/workflow", tags=["workflow"])


@router.get("/statuses/{status}/approvers", response_model=ApproversRead)
def get_required_approvers(status: Status) -> ApproversRead:
    """Roles permitted to act on a request at `status`; empty for terminal statuses."""
    roles = sorted(required_approvers(status), key=lambda role: role.value)
    return ApproversRead(
        status=status,
        roles=roles,
        role_names=[display_name(role) for role in roles],
    )
