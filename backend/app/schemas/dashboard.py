"""Dashboard counter schema."""

from __future__ import annotations

from sqlmodel import SQLModel


class DashboardStatsRead(SQLModel):
    """Counts over the requests visible to the caller."""

    total: int
    pending: int
    approved: int
    rejected: int
    in_progress: int
