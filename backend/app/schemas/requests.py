"""Purchase request API schemas for create, read, action, and query views."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import Field
from sqlmodel import SQLModel

from app.services.workflow.actions import ActionPayload, RequestAction
from app.services.workflow.visibility import Category, UserAction
from app.services.workflow.vocabulary import Role, Status

if TYPE_CHECKING:
    from app.models.purchase_requests import PurchaseRequest
    from app.services.workflow.visibility import VisibleRequest

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class RequestCreate(SQLModel):
    """Payload used by a requester to open a purchase request."""

    title: str = Field(min_length=1, examples=["Lab microscopes"])
    purpose: str = Field(default="", examples=["Replace end-of-life equipment"])
    college: str = ""
    department: str = ""
    cost_estimate: float = Field(default=0.0, ge=0, examples=[30000])
    expense_category: str = ""
    sop_reference: str | None = None
    attachments: list[str] = Field(default_factory=list)


class ActionCreate(SQLModel):
    """Action submitted against a request; unused fields are ignored."""

    action: RequestAction = Field(examples=["approve"])
    notes: str = Field(default="", description="Required for `reject`.")
    attachments: list[str] = Field(default_factory=list)
    query_target: Role | None = Field(
        default=None,
        description="Department a Dean routes the request to with `clarify`.",
        examples=["hr"],
    )
    query_type: str | None = None
    query_request: str = Field(default="", description="Question for `reject_with_query`.")
    query_response: str = Field(default="", description="Answer for `query_and_reapprove`.")
    budget_available: bool | None = None
    budget_allocated: float | None = None
    budget_spent: float | None = None
    budget_balance: float | None = None
    sop_reference: str | None = None

    def to_payload(self) -> ActionPayload:
        return ActionPayload(
            notes=self.notes,
            attachments=tuple(self.attachments),
            query_target=self.query_target,
            query_type=self.query_type,
            query_request=self.query_request,
            query_response=self.query_response,
            budget_available=self.budget_available,
            budget_allocated=self.budget_allocated,
            budget_spent=self.budget_spent,
            budget_balance=self.budget_balance,
            sop_reference=self.sop_reference,
        )


class VisibilityRead(SQLModel):
    can_see: bool
    category: Category | None = None
    reason: str
    user_action: UserAction | None = None


class RequestRead(SQLModel):
    """Full purchase request including its workflow history."""

    id: UUID
    request_number: str
    requester_id: UUID
    title: str
    purpose: str
    college: str
    department: str
    cost_estimate: float
    expense_category: str
    sop_reference: str | None = None
    attachments: list[str]
    status: Status
    pending_query: bool
    query_level: Role | None = None
    budget_available: bool | None = None
    budget_allocated: float | None = None
    budget_spent: float | None = None
    budget_balance: float | None = None
    sent_directly_to_dean: bool
    budget_not_available: bool
    history: list[dict[str, Any]]
    version: int
    created_at: datetime
    updated_at: datetime


class RequestListItem(RequestRead):
    """Request as seen by the caller, labeled for their dashboard."""

    visibility: VisibilityRead


class OriginalRejectorRead(SQLModel):
    role: str
    name: str
    actor_id: UUID


class QueryStatusRead(SQLModel):
    """Current query round as it applies to the caller."""

    pending_query: bool
    query_level: Role | None = None
    can_respond: bool
    is_dean_mediated: bool
    original_rejector: OriginalRejectorRead | None = None
    return_status: Status | None = None


def to_list_item(item: VisibleRequest[PurchaseRequest]) -> RequestListItem:
    """Serialize a request together with the caller's visibility label."""
    read = RequestRead.model_validate(item.request, from_attributes=True)
    return RequestListItem(
        **read.model_dump(),
        visibility=VisibilityRead(
            can_see=item.visibility.can_see,
            category=item.visibility.category,
            reason=item.visibility.reason,
            user_action=item.visibility.user_action,
        ),
    )
