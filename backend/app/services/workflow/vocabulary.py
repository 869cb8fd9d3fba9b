"""Request statuses, participant roles, and history actions."""

from __future__ import annotations

from enum import Enum


class Status(str, Enum):
    """Lifecycle states of a purchase request."""

    SUBMITTED = "submitted"
    MANAGER_REVIEW = "manager_review"
    PARALLEL_VERIFICATION = "parallel_verification"
    SOP_VERIFICATION = "sop_verification"
    BUDGET_CHECK = "budget_check"
    SOP_COMPLETED = "sop_completed"
    BUDGET_COMPLETED = "budget_completed"
    INSTITUTION_VERIFIED = "institution_verified"
    VP_APPROVAL = "vp_approval"
    HOI_APPROVAL = "hoi_approval"
    DEAN_REVIEW = "dean_review"
    DEAN_VERIFICATION = "dean_verification"
    DEPARTMENT_CHECKS = "department_checks"
    CHIEF_DIRECTOR_APPROVAL = "chief_director_approval"
    CHAIRMAN_APPROVAL = "chairman_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLARIFICATION_REQUIRED = "clarification_required"


class Role(str, Enum):
    """Participant roles. Each user holds exactly one."""

    REQUESTER = "requester"
    INSTITUTION_MANAGER = "institution_manager"
    SOP_VERIFIER = "sop_verifier"
    ACCOUNTANT = "accountant"
    VP = "vp"
    HEAD_OF_INSTITUTION = "head_of_institution"
    DEAN = "dean"
    MMA = "mma"
    HR = "hr"
    AUDIT = "audit"
    IT = "it"
    CHIEF_DIRECTOR = "chief_director"
    CHAIRMAN = "chairman"


class Action(str, Enum):
    """Kinds of history entries recorded against a request."""

    CREATE = "create"
    APPROVE = "approve"
    REJECT = "reject"
    CLARIFY = "clarify"
    FORWARD = "forward"
    REJECT_WITH_CLARIFICATION = "reject_with_clarification"
    CLARIFY_AND_REAPPROVE = "clarify_and_reapprove"


TERMINAL_STATUSES = frozenset({Status.APPROVED, Status.REJECTED})
DEPARTMENT_ROLES = frozenset({Role.MMA, Role.HR, Role.AUDIT, Role.IT})

# Roles whose query rejections are routed through the dean instead of the requester.
ABOVE_DEAN_ROLES = frozenset({Role.CHIEF_DIRECTOR, Role.CHAIRMAN})
ABOVE_DEAN_STATUSES = frozenset({Status.CHIEF_DIRECTOR_APPROVAL, Status.CHAIRMAN_APPROVAL})

ROLE_DISPLAY_NAMES: dict[Role, str] = {
    Role.REQUESTER: "Requester",
    Role.INSTITUTION_MANAGER: "Institution Manager",
    Role.SOP_VERIFIER: "SOP Verifier",
    Role.ACCOUNTANT: "Accountant",
    Role.VP: "Vice President",
    Role.HEAD_OF_INSTITUTION: "Head of Institution",
    Role.DEAN: "Dean",
    Role.MMA: "MMA",
    Role.HR: "HR",
    Role.AUDIT: "Audit",
    Role.IT: "IT",
    Role.CHIEF_DIRECTOR: "Chief Director",
    Role.CHAIRMAN: "Chairman",
}


def display_name(role: Role) -> str:
    return ROLE_DISPLAY_NAMES[role]
