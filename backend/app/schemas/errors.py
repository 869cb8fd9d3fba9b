"""Structured error payload schema used by API responses."""

from __future__ import annotations

from pydantic import Field
from sqlmodel import SQLModel


class ErrorResponse(SQLModel):
    """Error body returned by every failing endpoint."""

    detail: str | dict[str, object] | list[object] = Field(
        description="Human-readable message, or validation error details.",
        examples=[
            "Only Dean can act on requests at dean_review",
            "Request was modified concurrently; reload and retry",
        ],
    )
    request_id: str | None = Field(
        default=None,
        description="Request correlation identifier injected by middleware.",
    )
    code: str | None = Field(
        default=None,
        description="Machine-readable error code.",
        examples=["forbidden", "concurrent_modification", "not_found"],
    )
    retryable: bool | None = Field(
        default=None,
        description="Whether the client may retry the same call after reloading.",
    )
