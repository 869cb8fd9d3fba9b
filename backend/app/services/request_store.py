"""Persistence for purchase requests with optimistic-concurrency writes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import update
from sqlmodel import col

from app.core.logging import get_logger
from app.core.time import utcnow
from app.models.purchase_requests import PurchaseRequest
from app.services.workflow.errors import ConcurrentModificationError, RequestNotFoundError
from app.services.workflow.history import dump_entry

if TYPE_CHECKING:
    from collections.abc import Collection
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from app.services.workflow.history import HistoryEntry
    from app.services.workflow.vocabulary import Status

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestFilter:
    """Optional narrowing for `RequestStore.list_all`."""

    statuses: Collection[Status] | None = None
    college: str | None = None
    requester_id: UUID | None = None


@dataclass(frozen=True)
class RequestUpdate:
    """Column changes applied together with one history append."""

    status: Status | None = None
    flags: dict[str, Any] = field(default_factory=dict)


class RequestStore:
    """Session-bound access to `PurchaseRequest` rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, request_id: UUID) -> PurchaseRequest:
        request = await PurchaseRequest.objects.by_id(request_id).first(self.session)
        if request is None:
            raise RequestNotFoundError
        return request

    async def create(self, request: PurchaseRequest) -> PurchaseRequest:
        self.session.add(request)
        await self.session.commit()
        await self.session.refresh(request)
        return request

    async def append_history_and_update(
        self,
        request: PurchaseRequest,
        entry: HistoryEntry,
        change: RequestUpdate,
        *,
        expected_version: int,
    ) -> PurchaseRequest:
        """Append `entry` and apply `change` in one conditional UPDATE.

        The write only lands if the stored version still equals
        `expected_version`; otherwise `ConcurrentModificationError` is raised and
        nothing is written.
        """
        request_id = request.id
        values: dict[str, Any] = {
            "history": [*request.history, dump_entry(entry)],
            "version": expected_version + 1,
            "updated_at": utcnow(),
            **change.flags,
        }
        if change.status is not None and change.status.value != request.status:
            values["status"] = change.status.value

        statement = (
            update(PurchaseRequest)
            .where(col(PurchaseRequest.id) == request_id)
            .where(col(PurchaseRequest.version) == expected_version)
            .values(**values)
        )
        result = await self.session.execute(statement)
        if result.rowcount != 1:
            # Rollback expires `request`; only locals are safe to read past this point.
            await self.session.rollback()
            logger.info(
                "request_store.write.conflict",
                extra={"request_id": str(request_id), "expected_version": expected_version},
            )
            raise ConcurrentModificationError
        await self.session.commit()
        await self.session.refresh(request)
        return request

    async def list_all(self, filters: RequestFilter | None = None) -> list[PurchaseRequest]:
        """Return matching requests, newest first."""
        query = PurchaseRequest.objects.all()
        if filters is not None:
            if filters.statuses is not None:
                query = query.filter(
                    col(PurchaseRequest.status).in_([s.value for s in filters.statuses])
                )
            if filters.college:
                query = query.filter_by(college=filters.college)
            if filters.requester_id is not None:
                query = query.filter_by(requester_id=filters.requester_id)
        return await query.order_by(col(PurchaseRequest.created_at).desc()).all(self.session)
