"""Base SQLModel class with a query-manager entry point."""

from __future__ import annotations

from typing import ClassVar

from sqlmodel import SQLModel

from app.db.query_manager import ManagerDescriptor


class QueryModel(SQLModel):
    """SQLModel base exposing `Model.objects` query helpers."""

    objects: ClassVar[ManagerDescriptor] = ManagerDescriptor()
