"""User model holding each participant's single workflow role."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel
from app.services.workflow.vocabulary import Role

RUNTIME_ANNOTATION_TYPES = (datetime,)


class User(QueryModel, table=True):
    """Authenticated participant. Roles are stored in the DB, not in the auth provider."""

    __tablename__ = "users"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    clerk_user_id: str | None = Field(default=None, unique=True, index=True)
    email: str | None = Field(default=None, unique=True, index=True)
    name: str | None = None
    employee_id: str | None = Field(default=None, index=True)
    role: str = Field(default=Role.REQUESTER.value, index=True)
    college: str | None = None
    department: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def workflow_role(self) -> Role:
        return Role(self.role)
