"""Small generic persistence helpers shared by services."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, col, select

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlmodel.ext.asyncio.session import AsyncSession

ModelT = TypeVar("ModelT", bound=SQLModel)


async def get_by(session: AsyncSession, model: type[ModelT], **lookup: object) -> ModelT | None:
    """Return the first row matching all `lookup` equality filters."""
    stmt = select(model)
    for key, value in lookup.items():
        stmt = stmt.where(col(getattr(model, key)) == value)
    result = await session.exec(stmt.limit(1))
    return result.first()


async def get_or_create(
    session: AsyncSession,
    model: type[ModelT],
    *,
    defaults: Mapping[str, Any] | None = None,
    **lookup: object,
) -> tuple[ModelT, bool]:
    """Fetch a row by `lookup` or create it with `defaults`.

    Returns the row and whether it was created. A concurrent insert that wins the
    unique-constraint race is resolved by re-reading.
    """
    existing = await get_by(session, model, **lookup)
    if existing is not None:
        return existing, False

    obj = model(**{**dict(defaults or {}), **lookup})
    session.add(obj)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        existing = await get_by(session, model, **lookup)
        if existing is None:
            raise
        return existing, False
    await session.refresh(obj)
    return obj, True
