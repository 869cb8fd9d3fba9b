"""Caller authentication for Clerk and local-token auth modes.

Both modes resolve to a `User` row; the workflow role always comes from the
database, never from token claims.
"""

from __future__ import annotations

from dataclasses import dataclass
from hmac import compare_digest
from typing import TYPE_CHECKING

import httpx
from clerk_backend_api import Clerk
from clerk_backend_api.security.types import AuthenticateRequestOptions, AuthStatus, RequestState
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from app.core.auth_mode import AuthMode
from app.core.config import settings
from app.core.logging import get_logger
from app.db import crud
from app.db.session import get_session
from app.models.users import User
from app.services.workflow.errors import UnauthorizedActorError
from app.services.workflow.vocabulary import Role

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)
SECURITY_DEP = Depends(security)
SESSION_DEP = Depends(get_session)
ACTOR_EMAIL_HEADER = "X-Actor-Email"


class ClerkTokenPayload(BaseModel):
    """JWT claims payload shape required from Clerk tokens."""

    sub: str


@dataclass
class AuthContext:
    """Authenticated caller resolved from inbound auth headers."""

    user: User

    @property
    def role(self) -> Role:
        return self.user.workflow_role


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    value = authorization.strip()
    if not value.lower().startswith("bearer "):
        return None
    token = value.split(" ", maxsplit=1)[1].strip()
    return token or None


def _normalize_email(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lower()
    return cleaned or None


def _claim_email(claims: dict[str, object]) -> str | None:
    for key in ("email", "email_address", "primary_email_address"):
        email = _normalize_email(claims.get(key))
        if email:
            return email
    return None


def _claim_name(claims: dict[str, object]) -> str | None:
    for key in ("name", "full_name"):
        value = claims.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _make_authenticate_request_options() -> AuthenticateRequestOptions:
    return AuthenticateRequestOptions(
        secret_key=settings.clerk_secret_key.strip(),
        clock_skew_in_ms=int(settings.clerk_leeway * 1000),
        accepts_token=["session_token"],
    )


async def _authenticate_clerk_request(request: Request) -> RequestState:
    # The SDK expects an httpx.Request; build one from the ASGI request.
    httpx_request = httpx.Request(
        request.method,
        str(request.url),
        headers=dict(request.headers),
    )
    options = _make_authenticate_request_options()
    sdk = Clerk(bearer_auth=options.secret_key or "")
    return await run_in_threadpool(sdk.authenticate_request, httpx_request, options)


async def _get_or_sync_user(
    session: AsyncSession,
    *,
    clerk_user_id: str,
    claims: dict[str, object],
) -> User:
    """Map a Clerk subject onto a user row.

    Pre-provisioned users (seeded by email) are linked on first sign-in so they
    keep their assigned role; unknown subjects become requesters.
    """
    clerk_user_id_log = clerk_user_id[-6:]
    email = _claim_email(claims)
    user = await crud.get_by(session, User, clerk_user_id=clerk_user_id)
    if user is None and email:
        user = await crud.get_by(session, User, email=email)
        if user is not None and user.clerk_user_id is None:
            user.clerk_user_id = clerk_user_id
            session.add(user)
            await session.commit()
            await session.refresh(user)
            logger.info("auth.user.linked clerk_user_id=%s", clerk_user_id_log)
    if user is None:
        user, _created = await crud.get_or_create(
            session,
            User,
            clerk_user_id=clerk_user_id,
            defaults={
                "email": email,
                "name": _claim_name(claims),
                "role": Role.REQUESTER.value,
            },
        )
        logger.info("auth.user.sync clerk_user_id=%s", clerk_user_id_log)
    return user


async def _resolve_local_user(request: Request, session: AsyncSession) -> User:
    token = _extract_bearer_token(request.headers.get("Authorization"))
    expected = settings.local_auth_token.strip()
    if token is None or not expected or not compare_digest(token, expected):
        raise UnauthorizedActorError
    email = _normalize_email(request.headers.get(ACTOR_EMAIL_HEADER))
    if email is None:
        raise UnauthorizedActorError(f"{ACTOR_EMAIL_HEADER} header is required")
    user = await crud.get_by(session, User, email=email)
    if user is None:
        logger.info("auth.local.unknown_actor", extra={"email": email})
        raise UnauthorizedActorError("Unknown actor")
    return user


async def get_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = SECURITY_DEP,
    session: AsyncSession = SESSION_DEP,
) -> AuthContext:
    """Resolve the authenticated caller for the configured auth mode."""
    if settings.auth_mode == AuthMode.LOCAL:
        return AuthContext(user=await _resolve_local_user(request, session))

    request_state = await _authenticate_clerk_request(request)
    if request_state.status != AuthStatus.SIGNED_IN or not isinstance(request_state.payload, dict):
        raise UnauthorizedActorError
    claims: dict[str, object] = {str(k): v for k, v in request_state.payload.items()}
    try:
        clerk_user_id = ClerkTokenPayload.model_validate(claims).sub
    except ValidationError as exc:
        raise UnauthorizedActorError from exc
    if not clerk_user_id:
        raise UnauthorizedActorError
    user = await _get_or_sync_user(session, clerk_user_id=clerk_user_id, claims=claims)
    return AuthContext(user=user)
