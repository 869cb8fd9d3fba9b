"""Per-viewer visibility and dashboard categorization of requests."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Literal, TypeVar

from app.services.workflow.history import (
    ApproveEntry,
    ClarifyAndReapproveEntry,
    ClarifyEntry,
    ForwardEntry,
    RejectEntry,
    RejectWithClarificationEntry,
    last_department_target,
    last_index_reaching,
)
from app.services.workflow.queries import (
    can_respond,
    is_dean_mediated,
    is_pending_response_for,
    original_rejector,
    originating_query_index,
)
from app.services.workflow.state import RequestState
from app.services.workflow.transitions import required_approvers, statuses_for_role
from app.services.workflow.vocabulary import DEPARTMENT_ROLES, Role, Status

if TYPE_CHECKING:
    from uuid import UUID

Category = Literal["pending", "approved", "in_progress", "completed"]
UserAction = Literal["approve", "reject", "clarify"]

RecordT = TypeVar("RecordT")


@dataclass(frozen=True)
class Visibility:
    """Whether a viewer sees a request and how it is labeled for them."""

    can_see: bool
    category: Category | None
    reason: str
    user_action: UserAction | None = None


@dataclass(frozen=True)
class VisibleRequest(Generic[RecordT]):
    request: RecordT
    visibility: Visibility


@dataclass(frozen=True)
class _Involvement:
    has_acted: bool
    has_approved: bool
    has_rejected: bool
    has_clarified: bool


_HIDDEN = Visibility(can_see=False, category=None, reason="Not involved and not at your level")


def _involvement(state: RequestState, viewer_id: UUID) -> _Involvement:
    own = [entry for entry in state.history if entry.actor_id == viewer_id]
    return _Involvement(
        has_acted=bool(own),
        has_approved=any(isinstance(e, (ApproveEntry, ForwardEntry)) for e in own),
        has_rejected=any(isinstance(e, (RejectEntry, RejectWithClarificationEntry)) for e in own),
        has_clarified=any(isinstance(e, ClarifyEntry) for e in own),
    )


def _requires_role_now(state: RequestState, role: Role) -> bool:
    if state.status == Status.DEPARTMENT_CHECKS and role in DEPARTMENT_ROLES:
        return last_department_target(state.history) == role
    return role in required_approvers(state.status)


def _acted_since_status_change(state: RequestState, viewer_id: UUID) -> bool:
    reached = last_index_reaching(state.history, state.status)
    if reached is None:
        return False
    return any(
        entry.actor_id == viewer_id and isinstance(entry, (ApproveEntry, ForwardEntry))
        for entry in state.history[reached + 1 :]
    )


def _reached_owned_stage(state: RequestState, role: Role) -> bool:
    """Whether the request reached one of `role`'s stages before any rejection."""
    owned = statuses_for_role(role)
    for entry in state.history:
        if entry.new_status == Status.REJECTED:
            return False
        if entry.new_status not in owned:
            continue
        if entry.new_status == Status.DEPARTMENT_CHECKS and role in DEPARTMENT_ROLES:
            if isinstance(entry, ClarifyEntry) and entry.query_target == role:
                return True
            continue
        return True
    return False


def _dean_routed_department_check(state: RequestState, role: Role, viewer_id: UUID) -> bool:
    if role != Role.DEAN or state.status != Status.DEPARTMENT_CHECKS:
        return False
    return any(
        isinstance(entry, ClarifyEntry)
        and entry.query_target is not None
        and entry.actor_id == viewer_id
        for entry in state.history
    )


def _owns_current_status(state: RequestState, role: Role) -> bool:
    if state.status not in statuses_for_role(role):
        return False
    if state.status == Status.DEPARTMENT_CHECKS and role in DEPARTMENT_ROLES:
        return last_department_target(state.history) == role
    return True


_RoundState = Literal["awaiting", "mediating", "responded"]

_ROUND_REASONS: dict[str, str] = {
    "awaiting": "Awaiting requester response to your query",
    "mediating": "Awaiting Dean review of the requester's response",
}


def _own_query_round(state: RequestState, viewer_id: UUID) -> _RoundState | None:
    """State of a still-open query round the viewer raised, if any."""
    origin = originating_query_index(state.history)
    if origin is None or state.history[origin].actor_id != viewer_id:
        return None
    later = state.history[origin + 1 :]
    if any(isinstance(entry, RejectEntry) for entry in later):
        return None
    if not any(isinstance(entry, ClarifyAndReapproveEntry) for entry in later):
        return "awaiting"
    # The answer only reaches the raiser once no mediator still holds it.
    return "mediating" if state.pending_query else "responded"


def _requester_visibility(state: RequestState, viewer_id: UUID) -> Visibility:
    if state.requester_id != viewer_id:
        return Visibility(can_see=False, category=None, reason="Not own request")
    if is_pending_response_for(state, Role.REQUESTER):
        return Visibility(can_see=True, category="pending", reason="Response required to query")
    if state.status == Status.APPROVED:
        return Visibility(can_see=True, category="approved", reason="Own request")
    if state.status == Status.REJECTED:
        return Visibility(can_see=True, category="completed", reason="Own request")
    return Visibility(can_see=True, category="pending", reason="Own request")


def _dean_query_reason(state: RequestState) -> str:
    origin = originating_query_index(state.history)
    if origin is not None and any(
        isinstance(entry, ClarifyAndReapproveEntry) and entry.actor_role == Role.REQUESTER
        for entry in state.history[origin + 1 :]
    ):
        return "Review requester's response and re-approve"
    rejector = original_rejector(state)
    if rejector is None:
        return "Handle rejection from above"
    return f"Handle rejection from {rejector.name}"


def _categorize(
    state: RequestState,
    role: Role,
    viewer_id: UUID,
    involvement: _Involvement,
) -> Visibility:
    if state.status == Status.APPROVED:
        return Visibility(
            can_see=True,
            category="approved",
            reason="Request has been approved",
            user_action="approve" if involvement.has_approved else None,
        )

    if state.status == Status.REJECTED:
        round_state = _own_query_round(state, viewer_id)
        if round_state == "responded":
            return Visibility(
                can_see=True,
                category="pending",
                reason="Review needed: requester responded to your query",
                user_action="reject",
            )
        if round_state is not None:
            return Visibility(
                can_see=True,
                category="completed",
                reason=_ROUND_REASONS[round_state],
                user_action="reject",
            )
        return Visibility(
            can_see=True,
            category="completed",
            reason="Request has been rejected",
            user_action="reject" if involvement.has_rejected else None,
        )

    if is_pending_response_for(state, role) and can_respond(state, role, viewer_id):
        if role == Role.DEAN and is_dean_mediated(state):
            reason = _dean_query_reason(state)
        else:
            reason = "Response required to query"
        return Visibility(can_see=True, category="pending", reason=reason)

    if _requires_role_now(state, role) and not _acted_since_status_change(state, viewer_id):
        return Visibility(can_see=True, category="pending", reason="Waiting for your approval")

    if involvement.has_approved:
        return Visibility(
            can_see=True,
            category="approved",
            reason="You approved this request",
            user_action="approve",
        )
    if involvement.has_rejected:
        round_state = _own_query_round(state, viewer_id)
        if round_state == "responded":
            return Visibility(
                can_see=True,
                category="pending",
                reason="Review needed: requester responded to your query",
                user_action="reject",
            )
        reason = _ROUND_REASONS[round_state] if round_state else "You rejected this request"
        return Visibility(can_see=True, category="completed", reason=reason, user_action="reject")
    if involvement.has_clarified:
        return Visibility(
            can_see=True,
            category="in_progress",
            reason="You requested clarification",
            user_action="clarify",
        )

    if _owns_current_status(state, role):
        return Visibility(can_see=True, category="pending", reason="Available for your review")

    return Visibility(can_see=True, category="in_progress", reason="Request in workflow")


def visibility(state: RequestState, viewer_role: Role, viewer_id: UUID) -> Visibility:
    """Decide whether `viewer_id` (holding `viewer_role`) sees the request, and how."""
    if viewer_role == Role.REQUESTER:
        return _requester_visibility(state, viewer_id)

    involvement = _involvement(state, viewer_id)
    can_see = (
        involvement.has_acted
        or _requires_role_now(state, viewer_role)
        or can_respond(state, viewer_role, viewer_id)
        or _reached_owned_stage(state, viewer_role)
        or _dean_routed_department_check(state, viewer_role, viewer_id)
    )
    if not can_see:
        return _HIDDEN
    return _categorize(state, viewer_role, viewer_id, involvement)


def filter_by_visibility(
    records: Iterable[RecordT],
    viewer_role: Role,
    viewer_id: UUID,
    category: Category | None = None,
    *,
    to_state: Callable[[RecordT], RequestState] = RequestState.from_record,
) -> list[VisibleRequest[RecordT]]:
    """Attach visibility to each record, keeping visible ones in input order."""
    visible: list[VisibleRequest[RecordT]] = []
    for record in records:
        result = visibility(to_state(record), viewer_role, viewer_id)
        if not result.can_see:
            continue
        if category is not None and result.category != category:
            continue
        visible.append(VisibleRequest(request=record, visibility=result))
    return visible
