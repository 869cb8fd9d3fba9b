"""Django-style query helpers layered over SQLModel select statements."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlmodel import col, select

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.sql.elements import ColumnElement
    from sqlmodel import SQLModel
    from sqlmodel.ext.asyncio.session import AsyncSession
    from sqlmodel.sql.expression import SelectOfScalar

ModelT = TypeVar("ModelT", bound="SQLModel")


@dataclass(frozen=True)
class QuerySet(Generic[ModelT]):
    """Immutable, chainable query description for one model."""

    model: type[ModelT]
    clauses: tuple[ColumnElement[bool], ...] = ()
    ordering: tuple[Any, ...] = ()
    limit_value: int | None = None

    def filter(self, *clauses: ColumnElement[bool]) -> QuerySet[ModelT]:
        return replace(self, clauses=(*self.clauses, *clauses))

    def filter_by(self, **values: object) -> QuerySet[ModelT]:
        clauses = tuple(col(getattr(self.model, key)) == value for key, value in values.items())
        return self.filter(*clauses)

    def order_by(self, *ordering: Any) -> QuerySet[ModelT]:
        return replace(self, ordering=(*self.ordering, *ordering))

    def limit(self, value: int) -> QuerySet[ModelT]:
        return replace(self, limit_value=value)

    def statement(self) -> SelectOfScalar[ModelT]:
        """Build the underlying select statement."""
        stmt = select(self.model)
        if self.clauses:
            stmt = stmt.where(*self.clauses)
        if self.ordering:
            stmt = stmt.order_by(*self.ordering)
        if self.limit_value is not None:
            stmt = stmt.limit(self.limit_value)
        return stmt

    async def all(self, session: AsyncSession) -> list[ModelT]:
        return list(await session.exec(self.statement()))

    async def first(self, session: AsyncSession) -> ModelT | None:
        result = await session.exec(self.limit(1).statement())
        return result.first()


class ModelManager(Generic[ModelT]):
    """Entry point returned by `Model.objects`."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def all(self) -> QuerySet[ModelT]:
        return QuerySet(self.model)

    def filter(self, *clauses: ColumnElement[bool]) -> QuerySet[ModelT]:
        return self.all().filter(*clauses)

    def filter_by(self, **values: object) -> QuerySet[ModelT]:
        return self.all().filter_by(**values)

    def by_id(self, obj_id: UUID) -> QuerySet[ModelT]:
        return self.filter_by(id=obj_id)


class ManagerDescriptor:
    """Class-level descriptor that binds a `ModelManager` to the accessing model."""

    def __get__(self, instance: object, owner: type[Any]) -> ModelManager[Any]:
        return ModelManager(owner)
