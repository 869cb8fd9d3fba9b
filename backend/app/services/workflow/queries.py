"""Query (clarification) routing for rejected-with-query requests.

A query round opens when an approver rejects with a question. Rejections by
roles above the dean are routed to the dean, who mediates; every other
rejection goes straight to the requester. Once answered, the request returns
to the stage where the round originated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.services.workflow.history import RejectWithClarificationEntry, is_query_entry
from app.services.workflow.transitions import required_approvers
from app.services.workflow.vocabulary import (
    ABOVE_DEAN_ROLES,
    ABOVE_DEAN_STATUSES,
    TERMINAL_STATUSES,
    Role,
    Status,
    display_name,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from app.services.workflow.history import HistoryEntry
    from app.services.workflow.state import RequestState

PARALLEL_VERIFICATION_OWNER = "parallel_verification"


@dataclass(frozen=True)
class QueryTarget:
    """Where a rejection-with-query is sent."""

    target_status: Status
    target_role: Role
    is_dean_mediated: bool


@dataclass(frozen=True)
class OriginalRejector:
    """Stage owner whose rejection opened the current query round."""

    role: str
    name: str
    actor_id: UUID


@dataclass(frozen=True)
class QueryResolution:
    """Outcome of an accepted query response."""

    status: Status
    pending_query: bool
    query_level: Role | None


_STATUS_OWNERS: dict[Status, tuple[str, str]] = {
    Status.MANAGER_REVIEW: (Role.INSTITUTION_MANAGER.value, "Institution Manager"),
    Status.INSTITUTION_VERIFIED: (Role.INSTITUTION_MANAGER.value, "Institution Manager"),
    Status.CLARIFICATION_REQUIRED: (Role.INSTITUTION_MANAGER.value, "Institution Manager"),
    Status.PARALLEL_VERIFICATION: (PARALLEL_VERIFICATION_OWNER, "Parallel Verification"),
    Status.SOP_COMPLETED: (PARALLEL_VERIFICATION_OWNER, "Parallel Verification"),
    Status.BUDGET_COMPLETED: (PARALLEL_VERIFICATION_OWNER, "Parallel Verification"),
    Status.SOP_VERIFICATION: (Role.SOP_VERIFIER.value, "SOP Verifier"),
    Status.BUDGET_CHECK: (Role.ACCOUNTANT.value, "Accountant"),
    Status.VP_APPROVAL: (Role.VP.value, "Vice President"),
    Status.HOI_APPROVAL: (Role.HEAD_OF_INSTITUTION.value, "Head of Institution"),
    Status.DEAN_REVIEW: (Role.DEAN.value, "Dean"),
    Status.DEAN_VERIFICATION: (Role.DEAN.value, "Dean"),
    Status.CHIEF_DIRECTOR_APPROVAL: (Role.CHIEF_DIRECTOR.value, "Chief Director"),
    Status.CHAIRMAN_APPROVAL: (Role.CHAIRMAN.value, "Chairman"),
}

# SOP and budget verification share one re-entry point.
_RETURN_STATUS: dict[Status, Status] = {
    Status.MANAGER_REVIEW: Status.MANAGER_REVIEW,
    Status.CLARIFICATION_REQUIRED: Status.CLARIFICATION_REQUIRED,
    Status.PARALLEL_VERIFICATION: Status.PARALLEL_VERIFICATION,
    Status.SOP_VERIFICATION: Status.PARALLEL_VERIFICATION,
    Status.BUDGET_CHECK: Status.PARALLEL_VERIFICATION,
    Status.SOP_COMPLETED: Status.PARALLEL_VERIFICATION,
    Status.BUDGET_COMPLETED: Status.PARALLEL_VERIFICATION,
    Status.INSTITUTION_VERIFIED: Status.INSTITUTION_VERIFIED,
    Status.VP_APPROVAL: Status.VP_APPROVAL,
    Status.HOI_APPROVAL: Status.HOI_APPROVAL,
    Status.DEAN_REVIEW: Status.DEAN_REVIEW,
    Status.DEAN_VERIFICATION: Status.DEAN_VERIFICATION,
    Status.DEPARTMENT_CHECKS: Status.DEPARTMENT_CHECKS,
    Status.CHIEF_DIRECTOR_APPROVAL: Status.CHIEF_DIRECTOR_APPROVAL,
    Status.CHAIRMAN_APPROVAL: Status.CHAIRMAN_APPROVAL,
}


def query_target(current_status: Status, rejecting_role: Role) -> QueryTarget | None:
    """Compute where a rejection-with-query raised at `current_status` must go."""
    if (
        current_status in TERMINAL_STATUSES
        or current_status == Status.SUBMITTED
        or rejecting_role == Role.REQUESTER
    ):
        return None
    if rejecting_role in ABOVE_DEAN_ROLES:
        return QueryTarget(
            target_status=Status.DEAN_REVIEW,
            target_role=Role.DEAN,
            is_dean_mediated=True,
        )
    return QueryTarget(
        target_status=Status.SUBMITTED,
        target_role=Role.REQUESTER,
        is_dean_mediated=False,
    )


def originating_query_index(history: Sequence[HistoryEntry]) -> int | None:
    """Index of the entry that opened the latest query round.

    Dean relays to the requester are skipped so the originating rejection is
    found even after the dean has forwarded the question.
    """
    for index in range(len(history) - 1, -1, -1):
        entry = history[index]
        if not is_query_entry(entry):
            continue
        if isinstance(entry, RejectWithClarificationEntry) and entry.dean_relay:
            continue
        return index
    return None


def _originating_entry(state: RequestState) -> RejectWithClarificationEntry | None:
    index = originating_query_index(state.history)
    if index is None:
        return None
    entry = state.history[index]
    return entry if isinstance(entry, RejectWithClarificationEntry) else None


def is_pending_response_for(state: RequestState, role: Role) -> bool:
    return state.pending_query and state.query_level == role


def is_dean_mediated(state: RequestState) -> bool:
    """Whether the latest query round was routed through the dean."""
    entry = _originating_entry(state)
    if entry is None:
        return False
    return entry.is_dean_mediated or entry.previous_status in ABOVE_DEAN_STATUSES


def can_respond(state: RequestState, role: Role, user_id: UUID) -> bool:
    """Whether `user_id` acting as `role` may answer the open query.

    `query_level` is informational; this check is authoritative.
    """
    if not state.pending_query:
        return False
    if role == Role.REQUESTER:
        return state.query_level == Role.REQUESTER and user_id == state.requester_id
    if role == Role.DEAN:
        return state.query_level == Role.DEAN and is_dean_mediated(state)
    return False


def original_rejector(state: RequestState) -> OriginalRejector | None:
    entry = _originating_entry(state)
    if entry is None or entry.previous_status is None:
        return None
    owner = _STATUS_OWNERS.get(entry.previous_status)
    if owner is None:
        if entry.actor_role is None:
            return None
        owner = (entry.actor_role.value, display_name(entry.actor_role))
    role, name = owner
    return OriginalRejector(role=role, name=name, actor_id=entry.actor_id)


def return_status(state: RequestState) -> Status | None:
    """Status the request resumes at once the open round is resolved."""
    entry = _originating_entry(state)
    if entry is None or entry.previous_status is None:
        return None
    return _RETURN_STATUS.get(entry.previous_status)


def query_round_rejectors(state: RequestState) -> frozenset[Role]:
    """Roles that keep their veto while an open round is parked with someone else.

    The owners of the stage the round returns to may still reject outright, and
    so may the dean when mediating.
    """
    if not state.pending_query:
        return frozenset()
    resumed = return_status(state)
    roles = set(required_approvers(resumed)) if resumed is not None else set()
    if is_dean_mediated(state):
        roles.add(Role.DEAN)
    return frozenset(roles)


def resolve_response(state: RequestState, role: Role) -> QueryResolution | None:
    """Compute where an accepted query response moves the request.

    A requester answering a dean-mediated round hands the request to the dean;
    every other accepted response resumes at `return_status`.
    """
    if role == Role.REQUESTER and is_dean_mediated(state):
        return QueryResolution(
            status=Status.DEAN_REVIEW,
            pending_query=True,
            query_level=Role.DEAN,
        )
    resumed = return_status(state)
    if resumed is None:
        return None
    return QueryResolution(status=resumed, pending_query=False, query_level=None)
