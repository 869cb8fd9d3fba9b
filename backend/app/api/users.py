"""Current-user endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from app.api.deps import AUTH_DEP
from app.schemas.users import UserRead
from app.services.workflow.vocabulary import display_name

if TYPE_CHECKING:
    from app.core.auth import AuthContext

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserRead)
async def get_me(auth: AuthContext = AUTH_DEP) -> UserRead:
    """Return the authenticated user and their workflow role."""
    user = auth.user
    return UserRead(
        id=user.id,
        email=user.email,
        name=user.name,
        employee_id=user.employee_id,
        role=auth.role,
        role_name=display_name(auth.role),
        college=user.college,
        department=user.department,
    )
