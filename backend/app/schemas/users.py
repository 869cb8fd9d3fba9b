"""User API schemas."""

from __future__ import annotations

from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

from app.services.workflow.vocabulary import Role

RUNTIME_ANNOTATION_TYPES = (UUID,)


class UserRead(SQLModel):
    """Current user profile with their single workflow role."""

    id: UUID = Field(
        description="Internal user UUID.",
        examples=["11111111-1111-1111-1111-111111111111"],
    )
    email: str | None = Field(default=None, examples=["dean@institution.edu"])
    name: str | None = Field(default=None, examples=["Priya Raman"])
    employee_id: str | None = None
    role: Role = Field(description="Workflow role held by the user.", examples=["dean"])
    role_name: str = Field(description="Display name of the role.", examples=["Dean"])
    college: str | None = None
    department: str | None = None
