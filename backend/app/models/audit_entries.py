"""Append-only audit log model for security-relevant request events."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class AuditEntry(QueryModel, table=True):
    """Audit record for request creation and refused attempts."""

    __tablename__ = "audit_entries"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    actor_id: UUID | None = Field(default=None, index=True)
    actor_role: str = Field(default="", index=True)
    action: str = Field(index=True)
    target_type: str = Field(default="")
    target_id: UUID | None = Field(default=None, index=True)
    ip_address: str | None = None
    user_agent: str | None = None
    payload: dict[str, object] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
