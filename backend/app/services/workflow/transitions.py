"""Canonical transition table and next-status resolution for purchase requests.

Every authorization and visibility decision reads from `TRANSITIONS`: the set of
roles allowed to act on a status is the union of the roles on its outgoing rows,
and the statuses a role "owns" are the `from` side of the rows naming it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from app.services.workflow.vocabulary import (
    DEPARTMENT_ROLES,
    TERMINAL_STATUSES,
    Action,
    Role,
    Status,
)

# Chief-director approvals above this cost continue to the chairman.
CHAIRMAN_COST_THRESHOLD = 50000


@dataclass(frozen=True)
class Transition:
    """One legal edge of the workflow graph."""

    from_status: Status
    to_status: Status
    roles: frozenset[Role]


@dataclass(frozen=True)
class TransitionContext:
    """Request facts that influence branch points."""

    cost_estimate: float = 0.0
    sent_directly_to_dean: bool = False
    budget_not_available: bool = False
    query_target: Role | None = None


def _edge(from_status: Status, to_status: Status, *roles: Role) -> Transition:
    return Transition(from_status=from_status, to_status=to_status, roles=frozenset(roles))


_IM = Role.INSTITUTION_MANAGER
_SOP = Role.SOP_VERIFIER
_ACC = Role.ACCOUNTANT

TRANSITIONS: tuple[Transition, ...] = (
    _edge(Status.MANAGER_REVIEW, Status.PARALLEL_VERIFICATION, _IM),
    _edge(Status.MANAGER_REVIEW, Status.VP_APPROVAL, _IM),
    _edge(Status.MANAGER_REVIEW, Status.DEAN_REVIEW, _IM),
    _edge(Status.MANAGER_REVIEW, Status.REJECTED, _IM),
    _edge(Status.CLARIFICATION_REQUIRED, Status.MANAGER_REVIEW, _IM),
    _edge(Status.CLARIFICATION_REQUIRED, Status.REJECTED, _IM),
    _edge(Status.PARALLEL_VERIFICATION, Status.SOP_COMPLETED, _SOP),
    _edge(Status.PARALLEL_VERIFICATION, Status.BUDGET_COMPLETED, _ACC),
    _edge(Status.PARALLEL_VERIFICATION, Status.REJECTED, _SOP, _ACC),
    _edge(Status.SOP_COMPLETED, Status.INSTITUTION_VERIFIED, _ACC),
    _edge(Status.SOP_COMPLETED, Status.REJECTED, _ACC),
    _edge(Status.BUDGET_COMPLETED, Status.INSTITUTION_VERIFIED, _SOP),
    _edge(Status.BUDGET_COMPLETED, Status.REJECTED, _SOP),
    # Legacy sequential verification path.
    _edge(Status.SOP_VERIFICATION, Status.BUDGET_CHECK, _SOP),
    _edge(Status.SOP_VERIFICATION, Status.REJECTED, _SOP),
    _edge(Status.BUDGET_CHECK, Status.MANAGER_REVIEW, _ACC),
    _edge(Status.BUDGET_CHECK, Status.REJECTED, _ACC),
    _edge(Status.INSTITUTION_VERIFIED, Status.VP_APPROVAL, _IM),
    _edge(Status.INSTITUTION_VERIFIED, Status.DEAN_REVIEW, _IM),
    _edge(Status.INSTITUTION_VERIFIED, Status.REJECTED, _IM),
    _edge(Status.VP_APPROVAL, Status.HOI_APPROVAL, Role.VP),
    _edge(Status.VP_APPROVAL, Status.REJECTED, Role.VP),
    _edge(Status.HOI_APPROVAL, Status.DEAN_REVIEW, Role.HEAD_OF_INSTITUTION),
    _edge(Status.HOI_APPROVAL, Status.REJECTED, Role.HEAD_OF_INSTITUTION),
    _edge(Status.DEAN_REVIEW, Status.CHIEF_DIRECTOR_APPROVAL, Role.DEAN),
    _edge(Status.DEAN_REVIEW, Status.CHAIRMAN_APPROVAL, Role.DEAN),
    _edge(Status.DEAN_REVIEW, Status.DEPARTMENT_CHECKS, Role.DEAN),
    _edge(Status.DEAN_REVIEW, Status.DEAN_VERIFICATION, Role.DEAN),
    _edge(Status.DEAN_REVIEW, Status.REJECTED, Role.DEAN),
    _edge(Status.DEPARTMENT_CHECKS, Status.DEAN_VERIFICATION, *DEPARTMENT_ROLES),
    _edge(Status.DEPARTMENT_CHECKS, Status.REJECTED, *DEPARTMENT_ROLES),
    _edge(Status.DEAN_VERIFICATION, Status.CHIEF_DIRECTOR_APPROVAL, Role.DEAN),
    _edge(Status.DEAN_VERIFICATION, Status.DEPARTMENT_CHECKS, Role.DEAN),
    _edge(Status.DEAN_VERIFICATION, Status.REJECTED, Role.DEAN),
    _edge(Status.CHIEF_DIRECTOR_APPROVAL, Status.CHAIRMAN_APPROVAL, Role.CHIEF_DIRECTOR),
    _edge(Status.CHIEF_DIRECTOR_APPROVAL, Status.APPROVED, Role.CHIEF_DIRECTOR),
    _edge(Status.CHIEF_DIRECTOR_APPROVAL, Status.REJECTED, Role.CHIEF_DIRECTOR),
    _edge(Status.CHAIRMAN_APPROVAL, Status.APPROVED, Role.CHAIRMAN),
    _edge(Status.CHAIRMAN_APPROVAL, Status.REJECTED, Role.CHAIRMAN),
)


def required_approvers(status: Status) -> frozenset[Role]:
    """Return every role allowed to act while a request sits at `status`."""
    roles: set[Role] = set()
    for transition in TRANSITIONS:
        if transition.from_status == status:
            roles.update(transition.roles)
    return frozenset(roles)


def statuses_for_role(role: Role) -> frozenset[Status]:
    """Return the statuses at which `role` is expected to act."""
    return frozenset(t.from_status for t in TRANSITIONS if role in t.roles)


def is_legal(from_status: Status, to_status: Status, role: Role) -> bool:
    return any(
        t.from_status == from_status and t.to_status == to_status and role in t.roles
        for t in TRANSITIONS
    )


def _advances(action: Action) -> bool:
    return action in (Action.APPROVE, Action.FORWARD)


def _manager_next(current: Status, action: Action, context: TransitionContext) -> Status | None:
    if not _advances(action):
        return None
    return {
        Status.MANAGER_REVIEW: Status.PARALLEL_VERIFICATION,
        Status.INSTITUTION_VERIFIED: Status.VP_APPROVAL,
        Status.CLARIFICATION_REQUIRED: Status.MANAGER_REVIEW,
    }.get(current)


def _sop_next(current: Status, action: Action, context: TransitionContext) -> Status | None:
    if not _advances(action):
        return None
    return {
        Status.PARALLEL_VERIFICATION: Status.SOP_COMPLETED,
        Status.BUDGET_COMPLETED: Status.INSTITUTION_VERIFIED,
        Status.SOP_VERIFICATION: Status.BUDGET_CHECK,
    }.get(current)


def _accountant_next(
    current: Status, action: Action, context: TransitionContext
) -> Status | None:
    if not _advances(action):
        return None
    return {
        Status.PARALLEL_VERIFICATION: Status.BUDGET_COMPLETED,
        Status.SOP_COMPLETED: Status.INSTITUTION_VERIFIED,
        Status.BUDGET_CHECK: Status.MANAGER_REVIEW,
    }.get(current)


def _vp_next(current: Status, action: Action, context: TransitionContext) -> Status | None:
    if current == Status.VP_APPROVAL and _advances(action):
        return Status.HOI_APPROVAL
    return None


def _hoi_next(current: Status, action: Action, context: TransitionContext) -> Status | None:
    if current == Status.HOI_APPROVAL and _advances(action):
        return Status.DEAN_REVIEW
    return None


def _dean_next(current: Status, action: Action, context: TransitionContext) -> Status | None:
    if action == Action.CLARIFY:
        if context.query_target in DEPARTMENT_ROLES:
            return Status.DEPARTMENT_CHECKS
        return None
    if not _advances(action):
        return None
    if current == Status.DEAN_REVIEW:
        if context.sent_directly_to_dean or context.budget_not_available:
            return Status.CHAIRMAN_APPROVAL
        return Status.CHIEF_DIRECTOR_APPROVAL
    if current == Status.DEAN_VERIFICATION:
        return Status.CHIEF_DIRECTOR_APPROVAL
    return None


def _department_next(
    current: Status, action: Action, context: TransitionContext
) -> Status | None:
    if current == Status.DEPARTMENT_CHECKS and _advances(action):
        return Status.DEAN_VERIFICATION
    return None


def _chief_director_next(
    current: Status, action: Action, context: TransitionContext
) -> Status | None:
    if current != Status.CHIEF_DIRECTOR_APPROVAL or not _advances(action):
        return None
    if context.budget_not_available:
        return Status.APPROVED
    if context.cost_estimate > CHAIRMAN_COST_THRESHOLD:
        return Status.CHAIRMAN_APPROVAL
    return Status.APPROVED


def _chairman_next(current: Status, action: Action, context: TransitionContext) -> Status | None:
    if current == Status.CHAIRMAN_APPROVAL and _advances(action):
        return Status.APPROVED
    return None


_RoleRule = Callable[[Status, Action, TransitionContext], Status | None]

_ROLE_RULES: dict[Role, _RoleRule] = {
    Role.INSTITUTION_MANAGER: _manager_next,
    Role.SOP_VERIFIER: _sop_next,
    Role.ACCOUNTANT: _accountant_next,
    Role.VP: _vp_next,
    Role.HEAD_OF_INSTITUTION: _hoi_next,
    Role.DEAN: _dean_next,
    Role.MMA: _department_next,
    Role.HR: _department_next,
    Role.AUDIT: _department_next,
    Role.IT: _department_next,
    Role.CHIEF_DIRECTOR: _chief_director_next,
    Role.CHAIRMAN: _chairman_next,
}


def next_status(
    current: Status,
    action: Action,
    role: Role,
    context: TransitionContext | None = None,
) -> Status | None:
    """Compute the status a request moves to, or `None` when no legal edge exists.

    REJECT always lands on REJECTED and a CLARIFY without a department target
    always lands on CLARIFICATION_REQUIRED, for any role authorized at `current`.
    """
    if current in TERMINAL_STATUSES or role not in required_approvers(current):
        return None
    ctx = context or TransitionContext()
    if action == Action.REJECT:
        return Status.REJECTED
    rule = _ROLE_RULES.get(role)
    resolved = rule(current, action, ctx) if rule is not None else None
    if resolved is None and action == Action.CLARIFY:
        return Status.CLARIFICATION_REQUIRED
    if resolved is None or not is_legal(current, resolved, role):
        return None
    return resolved


# Approval resolution. Rules run in order and the first non-empty result wins.
_ApprovalRule = Callable[[Status, Role, TransitionContext], Status | None]


def _parallel_verification_rule(
    current: Status, role: Role, context: TransitionContext
) -> Status | None:
    if current == Status.PARALLEL_VERIFICATION:
        return {
            Role.SOP_VERIFIER: Status.SOP_COMPLETED,
            Role.ACCOUNTANT: Status.BUDGET_COMPLETED,
        }.get(role)
    if current == Status.SOP_COMPLETED and role == Role.ACCOUNTANT:
        return Status.INSTITUTION_VERIFIED
    if current == Status.BUDGET_COMPLETED and role == Role.SOP_VERIFIER:
        return Status.INSTITUTION_VERIFIED
    return None


def _chief_director_cost_rule(
    current: Status, role: Role, context: TransitionContext
) -> Status | None:
    if current == Status.CHIEF_DIRECTOR_APPROVAL and role == Role.CHIEF_DIRECTOR:
        return _chief_director_next(current, Action.APPROVE, context)
    return None


def _table_rule(current: Status, role: Role, context: TransitionContext) -> Status | None:
    return next_status(current, Action.APPROVE, role, context)


def _vp_override_rule(current: Status, role: Role, context: TransitionContext) -> Status | None:
    if current == Status.VP_APPROVAL and role == Role.VP:
        return Status.HOI_APPROVAL
    return None


APPROVAL_RULES: tuple[_ApprovalRule, ...] = (
    _parallel_verification_rule,
    _chief_director_cost_rule,
    _table_rule,
    _vp_override_rule,
)


def resolve_approval(
    current: Status,
    role: Role,
    context: TransitionContext | None = None,
) -> Status | None:
    """Resolve the status an `approve` action moves to."""
    ctx = context or TransitionContext()
    for rule in APPROVAL_RULES:
        resolved = rule(current, role, ctx)
        if resolved is not None:
            return resolved
    return None
