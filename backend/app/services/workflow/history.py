"""Typed history entries stored on each purchase request.

Each action has its own entry model carrying only the fields that action may
populate. Entries are persisted as JSON and parsed back through a discriminated
union keyed by `action`.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.core.time import utcnow
from app.services.workflow.vocabulary import Role, Status


class _EntryBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    actor_id: UUID
    actor_role: Role | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    previous_status: Status | None = None
    new_status: Status


class CreateEntry(_EntryBase):
    action: Literal["create"] = "create"
    notes: str = ""


class ApproveEntry(_EntryBase):
    action: Literal["approve"] = "approve"
    notes: str = ""
    attachments: list[str] = Field(default_factory=list)
    budget_available: bool | None = None
    budget_allocated: float | None = None
    budget_spent: float | None = None
    budget_balance: float | None = None
    sop_reference: str | None = None


class RejectEntry(_EntryBase):
    action: Literal["reject"] = "reject"
    notes: str
    attachments: list[str] = Field(default_factory=list)


class ClarifyEntry(_EntryBase):
    action: Literal["clarify"] = "clarify"
    notes: str = ""
    attachments: list[str] = Field(default_factory=list)
    query_target: Role | None = None
    query_type: str | None = None


class ForwardEntry(_EntryBase):
    action: Literal["forward"] = "forward"
    forwarded_message: str = ""
    attachments: list[str] = Field(default_factory=list)
    department_response: Role | None = None
    routing: str | None = None
    budget_available: bool | None = None
    budget_allocated: float | None = None
    budget_spent: float | None = None
    budget_balance: float | None = None
    sop_reference: str | None = None


class RejectWithClarificationEntry(_EntryBase):
    action: Literal["reject_with_clarification"] = "reject_with_clarification"
    query_request: str
    attachments: list[str] = Field(default_factory=list)
    requires_clarification: bool = True
    is_dean_mediated: bool = False
    original_rejector_id: UUID | None = None
    # Set when the dean relays an already-open mediated query to the requester.
    dean_relay: bool = False


class ClarifyAndReapproveEntry(_EntryBase):
    action: Literal["clarify_and_reapprove"] = "clarify_and_reapprove"
    query_response: str
    query_response_attachments: list[str] = Field(default_factory=list)
    is_dean_reapproval: bool = False


HistoryEntry = Annotated[
    CreateEntry
    | ApproveEntry
    | RejectEntry
    | ClarifyEntry
    | ForwardEntry
    | RejectWithClarificationEntry
    | ClarifyAndReapproveEntry,
    Field(discriminator="action"),
]

_HISTORY_ADAPTER: TypeAdapter[list[HistoryEntry]] = TypeAdapter(list[HistoryEntry])


def parse_history(raw: list[dict[str, Any]] | None) -> list[HistoryEntry]:
    """Parse stored JSON history into typed entries, oldest first."""
    return _HISTORY_ADAPTER.validate_python(raw or [])


def dump_entry(entry: HistoryEntry) -> dict[str, Any]:
    """Serialize one entry to its stored JSON form."""
    return entry.model_dump(mode="json")


def is_query_entry(entry: HistoryEntry) -> bool:
    """True for entries that open or relay a clarification round."""
    return isinstance(entry, RejectWithClarificationEntry) and entry.requires_clarification


def last_department_target(entries: Sequence[HistoryEntry]) -> Role | None:
    """Return the department named by the most recent dean routing, if any."""
    for entry in reversed(entries):
        if isinstance(entry, ClarifyEntry) and entry.query_target is not None:
            return entry.query_target
    return None


def last_index_reaching(entries: Sequence[HistoryEntry], status: Status) -> int | None:
    """Index of the latest entry whose `new_status` is `status`."""
    for index in range(len(entries) - 1, -1, -1):
        if entries[index].new_status == status:
            return index
    return None


__all__ = [
    "ApproveEntry",
    "ClarifyAndReapproveEntry",
    "ClarifyEntry",
    "CreateEntry",
    "ForwardEntry",
    "HistoryEntry",
    "RejectEntry",
    "RejectWithClarificationEntry",
    "dump_entry",
    "is_query_entry",
    "last_department_target",
    "last_index_reaching",
    "parse_history",
]
