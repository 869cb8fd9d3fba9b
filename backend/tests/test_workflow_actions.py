# ruff: noqa: INP001
"""Authorization and planning of submitted actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

import pytest

from app.core.config import settings
from app.services.workflow.actions import (
    ActionPayload,
    Actor,
    RequestAction,
    apply_action,
    plan_action,
)
from app.services.workflow.errors import (
    ConcurrentModificationError,
    ForbiddenActionError,
    InvariantViolationError,
    WorkflowValidationError,
)
from app.services.workflow.history import (
    ApproveEntry,
    ClarifyEntry,
    CreateEntry,
    ForwardEntry,
    RejectWithClarificationEntry,
    dump_entry,
)
from app.services.workflow.state import RequestState
from app.services.workflow.vocabulary import Role, Status

REQUESTER_ID = uuid4()


def _actor(role: Role) -> Actor:
    return Actor(id=uuid4(), role=role)


def _created() -> CreateEntry:
    return CreateEntry(
        actor_id=REQUESTER_ID,
        actor_role=Role.REQUESTER,
        new_status=Status.MANAGER_REVIEW,
    )


def _state(status: Status, *entries, level: Role | None = None, **kwargs: Any) -> RequestState:
    return RequestState(
        requester_id=REQUESTER_ID,
        status=status,
        history=(_created(), *entries),
        pending_query=level is not None,
        query_level=level,
        **kwargs,
    )


def _routed_to(department: Role) -> ClarifyEntry:
    return ClarifyEntry(
        actor_id=uuid4(),
        actor_role=Role.DEAN,
        previous_status=Status.DEAN_REVIEW,
        new_status=Status.DEPARTMENT_CHECKS,
        query_target=department,
    )


def test_wrong_role_is_forbidden_with_required_roles_named() -> None:
    with pytest.raises(ForbiddenActionError) as exc_info:
        plan_action(_state(Status.MANAGER_REVIEW), _actor(Role.VP), RequestAction.APPROVE)
    assert exc_info.value.detail == "Only Institution Manager can act on requests at manager_review"


def test_terminal_request_accepts_no_actions() -> None:
    with pytest.raises(ForbiddenActionError) as exc_info:
        plan_action(_state(Status.APPROVED), _actor(Role.CHAIRMAN), RequestAction.APPROVE)
    assert exc_info.value.detail == "No role can act on requests at approved"


def test_department_mismatch_names_both_departments() -> None:
    state = _state(Status.DEPARTMENT_CHECKS, _routed_to(Role.IT))
    with pytest.raises(ForbiddenActionError) as exc_info:
        plan_action(state, _actor(Role.HR), RequestAction.FORWARD)
    assert exc_info.value.detail == (
        "These queries were sent to IT department, not HR. "
        "Only IT users can respond to these queries."
    )


def test_targeted_department_forward_returns_to_dean_without_merging_attachments() -> None:
    state = _state(Status.DEPARTMENT_CHECKS, _routed_to(Role.HR))
    plan = plan_action(
        state,
        _actor(Role.HR),
        RequestAction.FORWARD,
        ActionPayload(notes="Staffing confirmed", attachments=("hr-memo.pdf",)),
    )
    assert plan.status == Status.DEAN_VERIFICATION
    assert isinstance(plan.entry, ForwardEntry)
    assert plan.entry.department_response == Role.HR
    assert plan.entry.attachments == ["hr-memo.pdf"]
    assert plan.merged_attachments == ()


def test_reject_requires_notes() -> None:
    state = _state(Status.VP_APPROVAL)
    with pytest.raises(WorkflowValidationError) as exc_info:
        plan_action(state, _actor(Role.VP), RequestAction.REJECT, ActionPayload(notes="   "))
    assert exc_info.value.detail == "Notes are required when rejecting a request"

    plan = plan_action(state, _actor(Role.VP), RequestAction.REJECT, ActionPayload(notes="No"))
    assert plan.status == Status.REJECTED
    assert plan.flags == {"pending_query": False, "query_level": None}


def test_open_query_blocks_ordinary_actions() -> None:
    query = RejectWithClarificationEntry(
        actor_id=uuid4(),
        actor_role=Role.VP,
        previous_status=Status.VP_APPROVAL,
        new_status=Status.SUBMITTED,
        query_request="Which vendor?",
    )
    state = _state(Status.SUBMITTED, query, level=Role.REQUESTER)
    with pytest.raises(ForbiddenActionError) as exc_info:
        plan_action(state, _actor(Role.VP), RequestAction.APPROVE)
    assert exc_info.value.detail == "Request has an open query awaiting a response from Requester"


def test_only_the_pending_responder_may_answer() -> None:
    query = RejectWithClarificationEntry(
        actor_id=uuid4(),
        actor_role=Role.VP,
        previous_status=Status.VP_APPROVAL,
        new_status=Status.SUBMITTED,
        query_request="Which vendor?",
    )
    state = _state(Status.SUBMITTED, query, level=Role.REQUESTER)

    with pytest.raises(ForbiddenActionError) as exc_info:
        plan_action(state, _actor(Role.REQUESTER), RequestAction.QUERY_AND_REAPPROVE)
    assert exc_info.value.detail == "Request is not pending response from you"

    requester = Actor(id=REQUESTER_ID, role=Role.REQUESTER)
    plan = plan_action(
        state,
        requester,
        RequestAction.QUERY_AND_REAPPROVE,
        ActionPayload(query_response="Vendor A", attachments=("quote.pdf",)),
    )
    assert plan.status == Status.VP_APPROVAL
    assert plan.flags == {"pending_query": False, "query_level": None}
    assert plan.merged_attachments == ("quote.pdf",)
    assert plan.event_type == "query_answered"


def test_stage_owner_may_still_reject_while_query_waits_on_requester() -> None:
    query = RejectWithClarificationEntry(
        actor_id=uuid4(),
        actor_role=Role.VP,
        previous_status=Status.VP_APPROVAL,
        new_status=Status.SUBMITTED,
        query_request="Which vendor?",
    )
    state = _state(Status.SUBMITTED, query, level=Role.REQUESTER)

    plan = plan_action(
        state,
        _actor(Role.VP),
        RequestAction.REJECT,
        ActionPayload(notes="No answer in two weeks"),
    )
    assert plan.status == Status.REJECTED
    assert plan.entry.previous_status == Status.SUBMITTED
    assert plan.flags == {"pending_query": False, "query_level": None}

    for role in (Role.REQUESTER, Role.HEAD_OF_INSTITUTION, Role.DEAN):
        with pytest.raises(ForbiddenActionError) as exc_info:
            plan_action(state, _actor(role), RequestAction.REJECT, ActionPayload(notes="No"))
        assert exc_info.value.detail == "Only Vice President can act on requests at submitted"


def test_dean_and_rejector_keep_veto_on_relayed_query() -> None:
    query = RejectWithClarificationEntry(
        actor_id=uuid4(),
        actor_role=Role.CHAIRMAN,
        previous_status=Status.CHAIRMAN_APPROVAL,
        new_status=Status.DEAN_REVIEW,
        query_request="Justify the spend",
        is_dean_mediated=True,
    )
    relay = RejectWithClarificationEntry(
        actor_id=uuid4(),
        actor_role=Role.DEAN,
        previous_status=Status.DEAN_REVIEW,
        new_status=Status.SUBMITTED,
        query_request="Please justify the spend",
        dean_relay=True,
    )
    state = _state(Status.SUBMITTED, query, relay, level=Role.REQUESTER)

    for role in (Role.DEAN, Role.CHAIRMAN):
        plan = plan_action(state, _actor(role), RequestAction.REJECT, ActionPayload(notes="No"))
        assert plan.status == Status.REJECTED

    with pytest.raises(ForbiddenActionError):
        plan_action(state, _actor(Role.VP), RequestAction.REJECT, ActionPayload(notes="No"))


def test_reject_with_query_above_dean_routes_to_dean() -> None:
    chairman = _actor(Role.CHAIRMAN)
    plan = plan_action(
        _state(Status.CHAIRMAN_APPROVAL),
        chairman,
        RequestAction.REJECT_WITH_QUERY,
        ActionPayload(query_request="Justify the spend"),
    )
    assert plan.status == Status.DEAN_REVIEW
    assert plan.flags == {"pending_query": True, "query_level": "dean"}
    assert plan.event_type == "query_raised"
    assert isinstance(plan.entry, RejectWithClarificationEntry)
    assert plan.entry.is_dean_mediated is True
    assert plan.entry.original_rejector_id == chairman.id


def test_reject_with_query_requires_text() -> None:
    with pytest.raises(WorkflowValidationError):
        plan_action(_state(Status.VP_APPROVAL), _actor(Role.VP), RequestAction.REJECT_WITH_QUERY)


def test_dean_relays_open_mediated_query_to_requester() -> None:
    query = RejectWithClarificationEntry(
        actor_id=uuid4(),
        actor_role=Role.CHAIRMAN,
        previous_status=Status.CHAIRMAN_APPROVAL,
        new_status=Status.DEAN_REVIEW,
        query_request="Justify the spend",
        is_dean_mediated=True,
    )
    state = _state(Status.DEAN_REVIEW, query, level=Role.DEAN)

    plan = plan_action(
        state,
        _actor(Role.DEAN),
        RequestAction.DEAN_SEND_TO_REQUESTER,
        ActionPayload(query_request="Please justify the spend"),
    )
    assert plan.status == Status.SUBMITTED
    assert plan.flags == {"pending_query": True, "query_level": "requester"}
    assert isinstance(plan.entry, RejectWithClarificationEntry)
    assert plan.entry.dean_relay is True

    with pytest.raises(ForbiddenActionError):
        plan_action(state, _actor(Role.VP), RequestAction.DEAN_SEND_TO_REQUESTER)


def test_send_to_dean_only_from_institution_verified() -> None:
    manager = _actor(Role.INSTITUTION_MANAGER)
    plan = plan_action(_state(Status.INSTITUTION_VERIFIED), manager, RequestAction.SEND_TO_DEAN)
    assert plan.status == Status.DEAN_REVIEW
    assert plan.flags == {"sent_directly_to_dean": True}
    assert isinstance(plan.entry, ForwardEntry)
    assert plan.entry.routing == "send_to_dean"

    with pytest.raises(ForbiddenActionError):
        plan_action(_state(Status.MANAGER_REVIEW), manager, RequestAction.SEND_TO_DEAN)


def test_budget_not_available_routes_manager_review_to_dean() -> None:
    plan = plan_action(
        _state(Status.MANAGER_REVIEW),
        _actor(Role.INSTITUTION_MANAGER),
        RequestAction.BUDGET_NOT_AVAILABLE,
    )
    assert plan.status == Status.DEAN_REVIEW
    assert plan.flags == {"budget_available": False, "budget_not_available": True}


def test_accountant_approval_records_budget_fields() -> None:
    plan = plan_action(
        _state(Status.PARALLEL_VERIFICATION),
        _actor(Role.ACCOUNTANT),
        RequestAction.APPROVE,
        ActionPayload(budget_available=True, budget_allocated=100000.0, budget_spent=25000.0),
    )
    assert plan.status == Status.BUDGET_COMPLETED
    assert plan.flags == {
        "budget_available": True,
        "budget_allocated": 100000.0,
        "budget_spent": 25000.0,
    }
    assert isinstance(plan.entry, ApproveEntry)
    assert plan.entry.budget_allocated == 100000.0


def test_clarify_target_is_dean_only() -> None:
    with pytest.raises(WorkflowValidationError):
        plan_action(
            _state(Status.MANAGER_REVIEW),
            _actor(Role.INSTITUTION_MANAGER),
            RequestAction.CLARIFY,
            ActionPayload(query_target=Role.HR),
        )
    with pytest.raises(WorkflowValidationError):
        plan_action(
            _state(Status.DEAN_REVIEW),
            _actor(Role.DEAN),
            RequestAction.CLARIFY,
            ActionPayload(query_target=Role.VP),
        )

    plan = plan_action(
        _state(Status.DEAN_REVIEW),
        _actor(Role.DEAN),
        RequestAction.CLARIFY,
        ActionPayload(query_target=Role.AUDIT),
    )
    assert plan.status == Status.DEPARTMENT_CHECKS


def test_chief_director_cost_routing_in_plan() -> None:
    director = _actor(Role.CHIEF_DIRECTOR)
    low = plan_action(
        _state(Status.CHIEF_DIRECTOR_APPROVAL, cost_estimate=30000),
        director,
        RequestAction.APPROVE,
    )
    high = plan_action(
        _state(Status.CHIEF_DIRECTOR_APPROVAL, cost_estimate=120000),
        director,
        RequestAction.APPROVE,
    )
    assert low.status == Status.APPROVED
    assert high.status == Status.CHAIRMAN_APPROVAL


def test_answer_without_return_status_is_an_invariant_violation() -> None:
    # Pending flags without any originating query entry.
    state = _state(Status.SUBMITTED, level=Role.REQUESTER)
    requester = Actor(id=REQUESTER_ID, role=Role.REQUESTER)
    with pytest.raises(InvariantViolationError) as exc_info:
        plan_action(
            state,
            requester,
            RequestAction.QUERY_AND_REAPPROVE,
            ActionPayload(query_response="Done"),
        )
    assert exc_info.value.status_code == 500
    assert "submitted" in exc_info.value.internal_detail


@dataclass
class _Record:
    id: UUID
    requester_id: UUID
    status: str
    history: list[dict[str, Any]]
    request_number: str = "123456"
    attachments: list[str] = field(default_factory=list)
    pending_query: bool = False
    query_level: str | None = None
    cost_estimate: float = 0.0
    version: int = 0


class _ConflictingStore:
    """Store whose first write loses to a concurrent approval."""

    def __init__(self, record: _Record, *, conflicts: int) -> None:
        self.record = record
        self.conflicts = conflicts
        self.writes: list[int] = []

    async def get(self, request_id: UUID) -> _Record:
        return self.record

    async def append_history_and_update(self, record, entry, change, *, expected_version):
        self.writes.append(expected_version)
        if self.conflicts:
            self.conflicts -= 1
            # The competing writer bumps the version before we land.
            self.record.version += 1
            raise ConcurrentModificationError
        record.history = [*record.history, dump_entry(entry)]
        record.version = expected_version + 1
        if change.status is not None:
            record.status = change.status.value
        for name, value in change.flags.items():
            setattr(record, name, value)
        return record


@pytest.mark.asyncio
async def test_apply_action_retries_after_conflict(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "workflow_notifications_enabled", False)
    record = _Record(
        id=uuid4(),
        requester_id=REQUESTER_ID,
        status=Status.VP_APPROVAL.value,
        history=[dump_entry(_created())],
    )
    store = _ConflictingStore(record, conflicts=1)

    updated = await apply_action(
        store,  # type: ignore[arg-type]
        record.id,
        _actor(Role.VP),
        RequestAction.APPROVE,
        ActionPayload(attachments=("vp-note.pdf",)),
        max_attempts=3,
    )

    assert store.writes == [0, 1]
    assert updated.status == Status.HOI_APPROVAL.value
    assert updated.version == 2
    assert updated.attachments == ["vp-note.pdf"]
    assert len(updated.history) == 2


@pytest.mark.asyncio
async def test_apply_action_gives_up_after_max_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "workflow_notifications_enabled", False)
    record = _Record(
        id=uuid4(),
        requester_id=REQUESTER_ID,
        status=Status.VP_APPROVAL.value,
        history=[dump_entry(_created())],
    )
    store = _ConflictingStore(record, conflicts=5)

    with pytest.raises(ConcurrentModificationError):
        await apply_action(
            store,  # type: ignore[arg-type]
            record.id,
            _actor(Role.VP),
            RequestAction.APPROVE,
            max_attempts=2,
        )
    assert store.writes == [0, 1]
