"""Immutable snapshot of the workflow-relevant fields of a request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from app.services.workflow.history import HistoryEntry, parse_history
from app.services.workflow.transitions import TransitionContext
from app.services.workflow.vocabulary import Role, Status


@dataclass(frozen=True)
class RequestState:
    """Everything the workflow engines read from a request."""

    requester_id: UUID
    status: Status
    history: tuple[HistoryEntry, ...]
    pending_query: bool = False
    query_level: Role | None = None
    cost_estimate: float = 0.0
    sent_directly_to_dean: bool = False
    budget_not_available: bool = False
    id: UUID | None = None
    version: int = 0

    @classmethod
    def from_record(cls, record: Any) -> RequestState:
        """Build a snapshot from any object shaped like a stored request."""
        query_level = getattr(record, "query_level", None)
        return cls(
            id=getattr(record, "id", None),
            requester_id=record.requester_id,
            status=Status(record.status),
            history=tuple(parse_history(record.history)),
            pending_query=bool(getattr(record, "pending_query", False)),
            query_level=Role(query_level) if query_level else None,
            cost_estimate=float(getattr(record, "cost_estimate", 0) or 0),
            sent_directly_to_dean=bool(getattr(record, "sent_directly_to_dean", False)),
            budget_not_available=bool(getattr(record, "budget_not_available", False)),
            version=int(getattr(record, "version", 0) or 0),
        )

    def transition_context(self, *, query_target: Role | None = None) -> TransitionContext:
        return TransitionContext(
            cost_estimate=self.cost_estimate,
            sent_directly_to_dean=self.sent_directly_to_dean,
            budget_not_available=self.budget_not_available,
            query_target=query_target,
        )
