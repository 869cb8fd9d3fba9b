"""Dashboard counters for the current user."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter

from app.api.deps import AUTH_DEP, SESSION_DEP
from app.schemas.dashboard import DashboardStatsRead
from app.services.dashboard import dashboard_stats

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.core.auth import AuthContext

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsRead)
async def get_stats(
    session: AsyncSession = SESSION_DEP,
    auth: AuthContext = AUTH_DEP,
) -> DashboardStatsRead:
    stats = await dashboard_stats(session, user=auth.user)
    return DashboardStatsRead(**asdict(stats))
