"""Purchase request model with its append-only workflow history."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field

from app.core.time import utcnow
from app.models.base import QueryModel
from app.services.workflow.vocabulary import Status

RUNTIME_ANNOTATION_TYPES = (datetime,)


class PurchaseRequest(QueryModel, table=True):
    """Approval case moving through the institutional workflow."""

    __tablename__ = "purchase_requests"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    request_number: str = Field(unique=True, index=True)
    requester_id: UUID = Field(foreign_key="users.id", index=True)
    title: str
    purpose: str = Field(default="")
    college: str = Field(default="", index=True)
    department: str = Field(default="")
    cost_estimate: float = Field(default=0.0)
    expense_category: str = Field(default="")
    sop_reference: str | None = None
    attachments: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    status: str = Field(default=Status.MANAGER_REVIEW.value, index=True)
    pending_query: bool = Field(default=False, index=True)
    query_level: str | None = Field(default=None, index=True)
    budget_available: bool | None = None
    budget_allocated: float | None = None
    budget_spent: float | None = None
    budget_balance: float | None = None
    sent_directly_to_dean: bool = Field(default=False)
    budget_not_available: bool = Field(default=False)

    history: list[dict[str, object]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    # Incremented by every workflow write; guards concurrent mutations.
    version: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
