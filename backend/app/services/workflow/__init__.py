"""Pure workflow engines: transitions, query routing, and visibility."""

from app.services.workflow.errors import (
    ConcurrentModificationError,
    ForbiddenActionError,
    InvariantViolationError,
    RequestNotFoundError,
    UnauthorizedActorError,
    WorkflowError,
    WorkflowValidationError,
)
from app.services.workflow.queries import can_respond, query_target, resolve_response
from app.services.workflow.state import RequestState
from app.services.workflow.transitions import (
    CHAIRMAN_COST_THRESHOLD,
    TRANSITIONS,
    next_status,
    required_approvers,
    resolve_approval,
    statuses_for_role,
)
from app.services.workflow.visibility import Visibility, filter_by_visibility, visibility
from app.services.workflow.vocabulary import Action, Role, Status

__all__ = [
    "CHAIRMAN_COST_THRESHOLD",
    "TRANSITIONS",
    "Action",
    "ConcurrentModificationError",
    "ForbiddenActionError",
    "InvariantViolationError",
    "RequestNotFoundError",
    "RequestState",
    "Role",
    "Status",
    "UnauthorizedActorError",
    "Visibility",
    "WorkflowError",
    "WorkflowValidationError",
    "can_respond",
    "filter_by_visibility",
    "next_status",
    "query_target",
    "required_approvers",
    "resolve_approval",
    "resolve_response",
    "statuses_for_role",
    "visibility",
]
