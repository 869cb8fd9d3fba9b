"""Single entry point for applying approver and requester actions to a request.

`plan_action` is pure: it authorizes the actor against the request snapshot and
returns the history entry plus column changes. `apply_action` loads the request,
plans, and writes the plan atomically, retrying on version conflicts so that a
losing writer is re-authorized against the state that beat it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from app.core.config import settings
from app.core.logging import get_logger
from app.services.request_store import RequestUpdate
from app.services.workflow.errors import (
    ConcurrentModificationError,
    ForbiddenActionError,
    InvariantViolationError,
    WorkflowValidationError,
)
from app.services.workflow.history import (
    ApproveEntry,
    ClarifyAndReapproveEntry,
    ClarifyEntry,
    ForwardEntry,
    HistoryEntry,
    RejectEntry,
    RejectWithClarificationEntry,
    last_department_target,
)
from app.services.workflow.queries import (
    can_respond,
    query_round_rejectors,
    query_target,
    resolve_response,
)
from app.services.workflow.state import RequestState
from app.services.workflow.transitions import (
    is_legal,
    next_status,
    required_approvers,
    resolve_approval,
    statuses_for_role,
)
from app.services.workflow.vocabulary import (
    DEPARTMENT_ROLES,
    Action,
    Role,
    Status,
    display_name,
)
from app.services.workflow_notifications import (
    WorkflowNotification,
    enqueue_notification,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from app.models.purchase_requests import PurchaseRequest
    from app.services.request_store import RequestStore

logger = get_logger(__name__)


class RequestAction(str, Enum):
    """Actions a caller may submit against a request."""

    APPROVE = "approve"
    REJECT = "reject"
    CLARIFY = "clarify"
    FORWARD = "forward"
    SEND_TO_DEAN = "send_to_dean"
    SEND_TO_VP = "send_to_vp"
    BUDGET_AVAILABLE = "budget_available"
    BUDGET_NOT_AVAILABLE = "budget_not_available"
    REJECT_WITH_QUERY = "reject_with_query"
    QUERY_AND_REAPPROVE = "query_and_reapprove"
    DEAN_SEND_TO_REQUESTER = "dean_send_to_requester"


# Actions still accepted while a query round is open.
_QUERY_ROUND_ACTIONS = frozenset(
    {
        RequestAction.REJECT,
        RequestAction.QUERY_AND_REAPPROVE,
        RequestAction.DEAN_SEND_TO_REQUESTER,
    }
)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller applying an action."""

    id: UUID
    role: Role
    email: str | None = None


@dataclass(frozen=True)
class ActionPayload:
    """Caller-supplied input; each action reads only the fields it needs."""

    notes: str = ""
    attachments: tuple[str, ...] = ()
    query_target: Role | None = None
    query_type: str | None = None
    query_request: str = ""
    query_response: str = ""
    budget_available: bool | None = None
    budget_allocated: float | None = None
    budget_spent: float | None = None
    budget_balance: float | None = None
    sop_reference: str | None = None


@dataclass(frozen=True)
class ActionPlan:
    """History entry and column changes produced for one action."""

    entry: HistoryEntry
    status: Status
    flags: dict[str, Any] = field(default_factory=dict)
    # Attachments merged into the request's own list (forward keeps them in history only).
    merged_attachments: tuple[str, ...] = ()
    event_type: str = "request_transitioned"


def _names(roles: frozenset[Role]) -> str:
    return ", ".join(sorted(display_name(role) for role in roles))


def _department_mismatch(target: Role, role: Role) -> ForbiddenActionError:
    target_name = target.value.upper()
    return ForbiddenActionError(
        f"These queries were sent to {target_name} department, not {role.value.upper()}. "
        f"Only {target_name} users can respond to these queries.",
    )


def _authorize(state: RequestState, actor: Actor, action: RequestAction) -> None:
    if action == RequestAction.QUERY_AND_REAPPROVE:
        if not can_respond(state, actor.role, actor.id):
            raise ForbiddenActionError("Request is not pending response from you")
        return

    if state.pending_query and action not in _QUERY_ROUND_ACTIONS:
        level = display_name(state.query_level) if state.query_level else "another role"
        raise ForbiddenActionError(
            f"Request has an open query awaiting a response from {level}",
        )

    if action == RequestAction.DEAN_SEND_TO_REQUESTER:
        if actor.role != Role.DEAN:
            raise ForbiddenActionError("Only the Dean can send a query to the requester")
        at_dean = state.status in statuses_for_role(Role.DEAN)
        pending_at_dean = state.pending_query and state.query_level == Role.DEAN
        if not at_dean or (state.pending_query and not pending_at_dean):
            raise ForbiddenActionError("Request is not awaiting the Dean")
        return

    required = required_approvers(state.status)
    if action == RequestAction.REJECT:
        required |= query_round_rejectors(state)
    if actor.role not in required:
        if not required:
            raise ForbiddenActionError(f"No role can act on requests at {state.status.value}")
        raise ForbiddenActionError(
            f"Only {_names(required)} can act on requests at {state.status.value}",
        )

    if state.status == Status.DEPARTMENT_CHECKS and actor.role in DEPARTMENT_ROLES:
        target = last_department_target(state.history)
        if target is not None and target != actor.role:
            raise _department_mismatch(target, actor.role)


def _require_text(value: str, message: str) -> str:
    text = value.strip()
    if not text:
        raise WorkflowValidationError(message)
    return text


def _unresolved(state: RequestState, actor: Actor, action: RequestAction) -> InvariantViolationError:
    return InvariantViolationError(
        f"No transition for action={action.value} role={actor.role.value} "
        f"status={state.status.value}",
    )


def _side_fields(actor: Actor, payload: ActionPayload) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if actor.role == Role.ACCOUNTANT:
        for name in ("budget_available", "budget_allocated", "budget_spent", "budget_balance"):
            value = getattr(payload, name)
            if value is not None:
                fields[name] = value
    if actor.role == Role.SOP_VERIFIER and payload.sop_reference:
        fields["sop_reference"] = payload.sop_reference.strip()
    return fields


def _plan_approve(state: RequestState, actor: Actor, payload: ActionPayload) -> ActionPlan:
    target = resolve_approval(state.status, actor.role, state.transition_context())
    if target is None:
        raise _unresolved(state, actor, RequestAction.APPROVE)
    side = _side_fields(actor, payload)
    entry = ApproveEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=target,
        notes=payload.notes.strip(),
        attachments=list(payload.attachments),
        **side,
    )
    return ActionPlan(
        entry=entry,
        status=target,
        flags=side,
        merged_attachments=payload.attachments,
    )


def _plan_reject(state: RequestState, actor: Actor, payload: ActionPayload) -> ActionPlan:
    notes = _require_text(payload.notes, "Notes are required when rejecting a request")
    target = next_status(state.status, Action.REJECT, actor.role)
    if target is None and actor.role in query_round_rejectors(state):
        target = Status.REJECTED
    if target is None:
        raise _unresolved(state, actor, RequestAction.REJECT)
    entry = RejectEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=target,
        notes=notes,
        attachments=list(payload.attachments),
    )
    return ActionPlan(
        entry=entry,
        status=target,
        flags={"pending_query": False, "query_level": None},
        merged_attachments=payload.attachments,
    )


def _plan_clarify(state: RequestState, actor: Actor, payload: ActionPayload) -> ActionPlan:
    query_target_role = payload.query_target
    if query_target_role is not None:
        if actor.role != Role.DEAN:
            raise WorkflowValidationError("Only the Dean can route a request to department checks")
        if query_target_role not in DEPARTMENT_ROLES:
            raise WorkflowValidationError(
                f"{display_name(query_target_role)} is not a verification department",
            )
    context = state.transition_context(query_target=query_target_role)
    target = next_status(state.status, Action.CLARIFY, actor.role, context)
    if target is None:
        raise _unresolved(state, actor, RequestAction.CLARIFY)
    entry = ClarifyEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=target,
        notes=payload.notes.strip(),
        attachments=list(payload.attachments),
        query_target=query_target_role,
        query_type=payload.query_type,
    )
    return ActionPlan(entry=entry, status=target, merged_attachments=payload.attachments)


def _plan_forward(state: RequestState, actor: Actor, payload: ActionPayload) -> ActionPlan:
    department_response: Role | None = None
    target = next_status(state.status, Action.FORWARD, actor.role, state.transition_context())
    if state.status == Status.DEPARTMENT_CHECKS and actor.role in DEPARTMENT_ROLES:
        department_response = actor.role
        if target is None:
            target = Status.DEAN_VERIFICATION
    if target is None:
        raise _unresolved(state, actor, RequestAction.FORWARD)
    side = _side_fields(actor, payload)
    entry = ForwardEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=target,
        forwarded_message=payload.notes.strip(),
        attachments=list(payload.attachments),
        department_response=department_response,
        **side,
    )
    return ActionPlan(entry=entry, status=target, flags=side)


_ROUTES: dict[RequestAction, tuple[Status, Status, dict[str, Any]]] = {
    RequestAction.SEND_TO_DEAN: (
        Status.INSTITUTION_VERIFIED,
        Status.DEAN_REVIEW,
        {"sent_directly_to_dean": True},
    ),
    RequestAction.SEND_TO_VP: (
        Status.INSTITUTION_VERIFIED,
        Status.VP_APPROVAL,
        {"sent_directly_to_dean": False},
    ),
    RequestAction.BUDGET_AVAILABLE: (
        Status.MANAGER_REVIEW,
        Status.VP_APPROVAL,
        {"budget_available": True, "budget_not_available": False},
    ),
    RequestAction.BUDGET_NOT_AVAILABLE: (
        Status.MANAGER_REVIEW,
        Status.DEAN_REVIEW,
        {"budget_available": False, "budget_not_available": True},
    ),
}


def _plan_route(
    state: RequestState,
    actor: Actor,
    payload: ActionPayload,
    action: RequestAction,
) -> ActionPlan:
    source, target, flags = _ROUTES[action]
    if actor.role != Role.INSTITUTION_MANAGER or state.status != source:
        raise ForbiddenActionError(
            f"{action.value} is only available to the Institution Manager at {source.value}",
        )
    if not is_legal(state.status, target, actor.role):
        raise _unresolved(state, actor, action)
    entry = ForwardEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=target,
        forwarded_message=payload.notes.strip(),
        attachments=list(payload.attachments),
        routing=action.value,
        budget_available=flags.get("budget_available"),
    )
    return ActionPlan(
        entry=entry,
        status=target,
        flags=dict(flags),
        merged_attachments=payload.attachments,
    )


def _plan_reject_with_query(
    state: RequestState,
    actor: Actor,
    payload: ActionPayload,
) -> ActionPlan:
    question = _require_text(
        payload.query_request or payload.notes,
        "Query text is required when rejecting with a query",
    )
    target = query_target(state.status, actor.role)
    if target is None:
        raise WorkflowValidationError(
            f"No query target exists for {display_name(actor.role)} at {state.status.value}",
        )
    entry = RejectWithClarificationEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=target.target_status,
        query_request=question,
        attachments=list(payload.attachments),
        is_dean_mediated=target.is_dean_mediated,
        original_rejector_id=actor.id if target.is_dean_mediated else None,
    )
    return ActionPlan(
        entry=entry,
        status=target.target_status,
        flags={"pending_query": True, "query_level": target.target_role.value},
        merged_attachments=payload.attachments,
        event_type="query_raised",
    )


def _plan_query_and_reapprove(
    state: RequestState,
    actor: Actor,
    payload: ActionPayload,
) -> ActionPlan:
    response = _require_text(
        payload.query_response or payload.notes,
        "A response is required to answer a query",
    )
    resolution = resolve_response(state, actor.role)
    if resolution is None:
        raise InvariantViolationError(
            f"Cannot determine return status for request at {state.status.value}",
        )
    entry = ClarifyAndReapproveEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=resolution.status,
        query_response=response,
        query_response_attachments=list(payload.attachments),
        is_dean_reapproval=actor.role == Role.DEAN,
    )
    return ActionPlan(
        entry=entry,
        status=resolution.status,
        flags={
            "pending_query": resolution.pending_query,
            "query_level": resolution.query_level.value if resolution.query_level else None,
        },
        merged_attachments=payload.attachments,
        event_type="query_answered",
    )


def _plan_dean_send_to_requester(
    state: RequestState,
    actor: Actor,
    payload: ActionPayload,
) -> ActionPlan:
    message = _require_text(
        payload.query_request or payload.notes,
        "A message is required when sending a query to the requester",
    )
    relay = state.pending_query and state.query_level == Role.DEAN
    entry = RejectWithClarificationEntry(
        actor_id=actor.id,
        actor_role=actor.role,
        previous_status=state.status,
        new_status=Status.SUBMITTED,
        query_request=message,
        attachments=list(payload.attachments),
        dean_relay=relay,
    )
    return ActionPlan(
        entry=entry,
        status=Status.SUBMITTED,
        flags={"pending_query": True, "query_level": Role.REQUESTER.value},
        merged_attachments=payload.attachments,
        event_type="query_raised",
    )


_PLANNERS: dict[RequestAction, Callable[[RequestState, Actor, ActionPayload], ActionPlan]] = {
    RequestAction.APPROVE: _plan_approve,
    RequestAction.REJECT: _plan_reject,
    RequestAction.CLARIFY: _plan_clarify,
    RequestAction.FORWARD: _plan_forward,
    RequestAction.REJECT_WITH_QUERY: _plan_reject_with_query,
    RequestAction.QUERY_AND_REAPPROVE: _plan_query_and_reapprove,
    RequestAction.DEAN_SEND_TO_REQUESTER: _plan_dean_send_to_requester,
}


def plan_action(
    state: RequestState,
    actor: Actor,
    action: RequestAction,
    payload: ActionPayload | None = None,
) -> ActionPlan:
    """Authorize `actor` and compute the effect of `action` on `state`."""
    body = payload or ActionPayload()
    _authorize(state, actor, action)
    if action in _ROUTES:
        return _plan_route(state, actor, body, action)
    return _PLANNERS[action](state, actor, body)


def _notify(request: PurchaseRequest, plan: ActionPlan, actor: Actor) -> None:
    if not settings.workflow_notifications_enabled:
        return
    status = Status(request.status)
    if request.pending_query and request.query_level:
        target_roles = [request.query_level]
    else:
        target_roles = sorted(role.value for role in required_approvers(status))
    enqueue_notification(
        WorkflowNotification(
            event_type=plan.event_type,
            request_id=request.id,
            request_number=request.request_number,
            target_roles=target_roles,
            target_user_ids=[request.requester_id],
            payload={
                "action": plan.entry.action,
                "actor_role": actor.role.value,
                "previous_status": (
                    plan.entry.previous_status.value if plan.entry.previous_status else None
                ),
                "status": status.value,
            },
        ),
    )

async def apply_action(
    store: RequestStore,
    request_id: UUID,
    actor: Actor,
    action: RequestAction,
    payload: ActionPayload | None = None,
    *,
    max_attempts: int | None = None,
) -> PurchaseRequest:
    """Apply `action` to the stored request and return the updated row."""
    attempts = max_attempts or settings.workflow_write_max_attempts
    for attempt in range(1, attempts + 1):
        record = await store.get(request_id)
        state = RequestState.from_record(record)
        try:
            plan = plan_action(state, actor, action, payload)
        except InvariantViolationError as exc:
            logger.error(
                "workflow.invariant_violation",
                extra={
                    "request_id": str(request_id),
                    "action": action.value,
                    "actor_role": actor.role.value,
                    "status": state.status.value,
                    "detail": exc.internal_detail,
                },
            )
            raise
        except ForbiddenActionError as exc:
            logger.info(
                "workflow.action.forbidden",
                extra={
                    "request_id": str(request_id),
                    "action": action.value,
                    "actor_role": actor.role.value,
                    "status": state.status.value,
                    "detail": exc.detail,
                },
            )
            raise

        flags = dict(plan.flags)
        if plan.merged_attachments:
            flags["attachments"] = [*record.attachments, *plan.merged_attachments]
        try:
            updated = await store.append_history_and_update(
                record,
                plan.entry,
                RequestUpdate(status=plan.status, flags=flags),
                expected_version=state.version,
            )
        except ConcurrentModificationError:
            logger.warning(
                "workflow.action.conflict",
                extra={
                    "request_id": str(request_id),
                    "action": action.value,
                    "attempt": attempt,
                },
            )
            if attempt >= attempts:
                raise
            continue

        logger.info(
            "workflow.action.applied",
            extra={
                "request_id": str(request_id),
                "action": action.value,
                "actor_role": actor.role.value,
                "previous_status": state.status.value,
                "status": updated.status,
            },
        )
        _notify(updated, plan, actor)
        return updated

    raise ConcurrentModificationError  # pragma: no cover
