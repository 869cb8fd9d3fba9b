"""Workflow error taxonomy mapped onto HTTP exceptions."""

from __future__ import annotations

from fastapi import HTTPException, status


class WorkflowError(HTTPException):
    """Base error carrying a stable machine-readable code."""

    code = "workflow_error"
    retryable = False
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.status_code_default, detail=detail)


class RequestNotFoundError(WorkflowError):
    code = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, detail: str = "Request not found") -> None:
        super().__init__(detail)


class UnauthorizedActorError(WorkflowError):
    code = "unauthorized"
    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(detail)


class ForbiddenActionError(WorkflowError):
    code = "forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN


class WorkflowValidationError(WorkflowError):
    code = "validation_error"
    status_code_default = status.HTTP_422_UNPROCESSABLE_CONTENT


class ConcurrentModificationError(WorkflowError):
    """Another writer advanced the request first; re-read and reapply."""

    code = "concurrent_modification"
    retryable = True
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(
        self,
        detail: str = "Request was modified concurrently; reload and retry",
    ) -> None:
        super().__init__(detail)


class InvariantViolationError(WorkflowError):
    """The engines reached a state the transition table claims cannot occur.

    `internal_detail` is logged; clients only see a generic message.
    """

    code = "invariant_violation"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, internal_detail: str) -> None:
        super().__init__("Workflow could not resolve the requested transition")
        self.internal_detail = internal_detail
