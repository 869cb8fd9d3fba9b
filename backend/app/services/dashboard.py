"""Dashboard counters computed over the caller's visible requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.services.requests import list_visible_requests
from app.services.workflow.vocabulary import Status

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.models.purchase_requests import PurchaseRequest
    from app.models.users import User
    from app.services.workflow.visibility import VisibleRequest


@dataclass(frozen=True)
class DashboardStats:
    total: int
    pending: int
    approved: int
    rejected: int
    in_progress: int


def summarize(items: list[VisibleRequest[PurchaseRequest]]) -> DashboardStats:
    """Count by viewer category; rejected is counted from the request status."""
    categories = [item.visibility.category for item in items]
    return DashboardStats(
        total=len(items),
        pending=categories.count("pending"),
        approved=categories.count("approved"),
        rejected=sum(1 for item in items if item.request.status == Status.REJECTED.value),
        in_progress=categories.count("in_progress"),
    )


async def dashboard_stats(session: AsyncSession, *, user: User) -> DashboardStats:
    return summarize(await list_visible_requests(session, user=user))
