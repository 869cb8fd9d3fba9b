"""Public schema exports shared across API route modules."""

from app.schemas.dashboard import DashboardStatsRead
from app.schemas.errors import ErrorResponse
from app.schemas.health import HealthStatusResponse
from app.schemas.requests import (
    ActionCreate,
    QueryStatusRead,
    RequestCreate,
    RequestListItem,
    RequestRead,
    VisibilityRead,
)
from app.schemas.users import UserRead
from app.schemas.workflow import ApproversRead

__all__ = [
    "ActionCreate",
    "ApproversRead",
    "DashboardStatsRead",
    "ErrorResponse",
    "HealthStatusResponse",
    "QueryStatusRead",
    "RequestCreate",
    "RequestListItem",
    "RequestRead",
    "UserRead",
    "VisibilityRead",
]
