"""Append-only audit trail for request creation and refused attempts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.core.logging import get_logger
from app.core.time import utcnow
from app.models.audit_entries import AuditEntry

if TYPE_CHECKING:
    from uuid import UUID

    from fastapi import Request
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)


def client_details(request: Request | None) -> tuple[str | None, str | None]:
    """Return `(ip_address, user_agent)` for the inbound request, if any."""
    if request is None:
        return None, None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address: str | None = forwarded.split(",", maxsplit=1)[0].strip() or None
    else:
        ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("User-Agent")


async def record_audit(
    session: AsyncSession,
    *,
    action: str,
    actor_id: UUID | None,
    actor_role: str = "",
    target_type: str = "",
    target_id: UUID | None = None,
    request: Request | None = None,
    payload: dict[str, object] | None = None,
    commit: bool = True,
) -> AuditEntry:
    """Create an audit log entry; pass `commit=False` to join the caller's transaction."""
    ip_address, user_agent = client_details(request)
    entry = AuditEntry(
        actor_id=actor_id,
        actor_role=actor_role,
        action=action,
        target_type=target_type,
        target_id=target_id,
        ip_address=ip_address,
        user_agent=user_agent,
        payload=payload,
        created_at=utcnow(),
    )
    session.add(entry)
    if commit:
        await session.commit()
        await session.refresh(entry)
    logger.info(
        "audit.recorded",
        extra={
            "audit_action": action,
            "actor_role": actor_role,
            "target_id": str(target_id) if target_id else None,
        },
    )
    return entry
