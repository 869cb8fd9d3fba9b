"""Schemas exposing transition-table lookups."""

from __future__ import annotations

from sqlmodel import SQLModel

from app.services.workflow.vocabulary import Role, Status


class ApproversRead(SQLModel):
    """Roles that may act on a request sitting at `status`."""

    status: Status
    roles: list[Role]
    role_names: list[str]
