# ruff: noqa: INP001
"""End-to-end request workflow through the HTTP API with local auth."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi import APIRouter, FastAPI
from fastapi_pagination import add_pagination
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.api.approvals import router as approvals_router
from app.api.dashboard import router as dashboard_router
from app.api.queries import router as queries_router
from app.api.requests import router as requests_router
from app.api.users import router as users_router
from app.api.workflow import router as workflow_router
from app.core import auth as auth_module
from app.core.auth_mode import AuthMode
from app.core.config import settings
from app.db.session import get_session
from app.models.users import User
from app.services.workflow.vocabulary import Role

TOKEN = "integration-token"
DOMAIN = "institution.edu"


async def _make_engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


def _build_test_app(
    session_maker: async_sessionmaker[AsyncSession],
) -> FastAPI:
    app = FastAPI()
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(requests_router)
    api_v1.include_router(approvals_router)
    api_v1.include_router(queries_router)
    api_v1.include_router(dashboard_router)
    api_v1.include_router(users_router)
    api_v1.include_router(workflow_router)
    app.include_router(api_v1)
    add_pagination(app)

    async def _override_get_session() -> AsyncSession:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[auth_module.get_session] = _override_get_session
    return app


async def _seed_role_users(session_maker: async_sessionmaker[AsyncSession]) -> None:
    async with session_maker() as session:
        for role in Role:
            session.add(User(email=f"{role.value}@{DOMAIN}", name=role.value, role=role.value))
        await session.commit()


def _as(role: Role) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {TOKEN}",
        auth_module.ACTOR_EMAIL_HEADER: f"{role.value}@{DOMAIN}",
    }


async def _act(
    client: AsyncClient,
    request_id: str,
    role: Role,
    action: str,
    **body: Any,
) -> dict[str, Any]:
    response = await client.post(
        f"/api/v1/requests/{request_id}/actions",
        headers=_as(role),
        json={"action": action, **body},
    )
    assert response.status_code == 200, response.text
    return response.json()


async def _create(client: AsyncClient, *, cost: float) -> dict[str, Any]:
    response = await client.post(
        "/api/v1/requests",
        headers=_as(Role.REQUESTER),
        json={
            "title": "Spectrophotometer",
            "purpose": "Teaching lab",
            "cost_estimate": cost,
            "attachments": ["quote.pdf"],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _advance_to_chief_director(client: AsyncClient, request_id: str) -> None:
    await _act(client, request_id, Role.INSTITUTION_MANAGER, "approve")
    await _act(client, request_id, Role.SOP_VERIFIER, "approve", sop_reference="SOP-12")
    await _act(
        client,
        request_id,
        Role.ACCOUNTANT,
        "approve",
        budget_available=True,
        budget_allocated=200000,
    )
    await _act(client, request_id, Role.INSTITUTION_MANAGER, "approve")
    await _act(client, request_id, Role.VP, "approve")
    await _act(client, request_id, Role.HEAD_OF_INSTITUTION, "approve")
    body = await _act(client, request_id, Role.DEAN, "approve")
    assert body["status"] == "chief_director_approval"


@pytest.fixture
def local_auth(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "auth_mode", AuthMode.LOCAL)
    monkeypatch.setattr(settings, "local_auth_token", TOKEN)
    monkeypatch.setattr(settings, "workflow_notifications_enabled", False)


@pytest.mark.asyncio
@pytest.mark.usefixtures("local_auth")
async def test_low_cost_request_is_approved_by_chief_director() -> None:
    engine = await _make_engine()
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await _seed_role_users(session_maker)
    app = _build_test_app(session_maker)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            created = await _create(client, cost=30000)
            request_id = created["id"]
            assert created["status"] == "manager_review"
            assert len(created["request_number"]) == 6
            assert created["history"][0]["action"] == "create"

            await _advance_to_chief_director(client, request_id)
            final = await _act(client, request_id, Role.CHIEF_DIRECTOR, "approve")

            assert final["status"] == "approved"
            assert final["sop_reference"] == "SOP-12"
            assert final["budget_allocated"] == 200000
            assert [entry["action"] for entry in final["history"]] == [
                "create",
                *["approve"] * 8,
            ]
            assert final["version"] == 8

            mine = await client.get("/api/v1/requests", headers=_as(Role.REQUESTER))
            assert mine.status_code == 200
            items = mine.json()["items"]
            assert [item["id"] for item in items] == [request_id]
            assert items[0]["visibility"]["category"] == "approved"

            # Never reached the chairman.
            hidden = await client.get(
                f"/api/v1/requests/{request_id}",
                headers=_as(Role.CHAIRMAN),
            )
            assert hidden.status_code == 403
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.usefixtures("local_auth")
async def test_high_cost_request_needs_chairman() -> None:
    engine = await _make_engine()
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await _seed_role_users(session_maker)
    app = _build_test_app(session_maker)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            request_id = (await _create(client, cost=120000))["id"]
            await _advance_to_chief_director(client, request_id)

            routed = await _act(client, request_id, Role.CHIEF_DIRECTOR, "approve")
            assert routed["status"] == "chairman_approval"

            inbox = await client.get("/api/v1/approvals", headers=_as(Role.CHAIRMAN))
            assert inbox.status_code == 200
            assert [item["id"] for item in inbox.json()["items"]] == [request_id]

            final = await _act(client, request_id, Role.CHAIRMAN, "approve")
            assert final["status"] == "approved"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.usefixtures("local_auth")
async def test_query_round_trip_returns_request_to_raiser() -> None:
    engine = await _make_engine()
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await _seed_role_users(session_maker)
    app = _build_test_app(session_maker)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            request_id = (await _create(client, cost=1000))["id"]
            held = await _act(
                client,
                request_id,
                Role.INSTITUTION_MANAGER,
                "reject_with_query",
                query_request="Which vendor?",
            )
            assert held["status"] == "submitted"
            assert held["pending_query"] is True
            assert held["query_level"] == "requester"

            blocked = await client.post(
                f"/api/v1/requests/{request_id}/actions",
                headers=_as(Role.INSTITUTION_MANAGER),
                json={"action": "approve"},
            )
            assert blocked.status_code == 403

            queries = await client.get("/api/v1/queries", headers=_as(Role.REQUESTER))
            assert [item["id"] for item in queries.json()] == [request_id]

            status_view = await client.get(
                f"/api/v1/requests/{request_id}/query",
                headers=_as(Role.REQUESTER),
            )
            assert status_view.status_code == 200
            query_status = status_view.json()
            assert query_status["can_respond"] is True
            assert query_status["is_dean_mediated"] is False
            assert query_status["return_status"] == "manager_review"
            assert query_status["original_rejector"]["role"] == "institution_manager"

            answered = await _act(
                client,
                request_id,
                Role.REQUESTER,
                "query_and_reapprove",
                query_response="Vendor A",
                attachments=["vendor-a.pdf"],
            )
            assert answered["status"] == "manager_review"
            assert answered["pending_query"] is False
            assert answered["attachments"] == ["quote.pdf", "vendor-a.pdf"]

            approved = await _act(client, request_id, Role.INSTITUTION_MANAGER, "approve")
            assert approved["status"] == "parallel_verification"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.usefixtures("local_auth")
async def test_chairman_query_is_mediated_by_dean() -> None:
    engine = await _make_engine()
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await _seed_role_users(session_maker)
    app = _build_test_app(session_maker)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            request_id = (await _create(client, cost=120000))["id"]
            await _advance_to_chief_director(client, request_id)
            await _act(client, request_id, Role.CHIEF_DIRECTOR, "approve")

            raised = await _act(
                client,
                request_id,
                Role.CHAIRMAN,
                "reject_with_query",
                query_request="Why not lease instead?",
            )
            assert raised["status"] == "dean_review"
            assert raised["query_level"] == "dean"

            relayed = await _act(
                client,
                request_id,
                Role.DEAN,
                "dean_send_to_requester",
                query_request="Chairman asks why we are not leasing",
            )
            assert relayed["status"] == "submitted"
            assert relayed["query_level"] == "requester"

            answered = await _act(
                client,
                request_id,
                Role.REQUESTER,
                "query_and_reapprove",
                query_response="Leasing costs more over five years",
            )
            assert answered["status"] == "dean_review"
            assert answered["pending_query"] is True
            assert answered["query_level"] == "dean"

            early = await client.post(
                f"/api/v1/requests/{request_id}/actions",
                headers=_as(Role.CHAIRMAN),
                json={"action": "approve"},
            )
            assert early.status_code == 403

            status_view = await client.get(
                f"/api/v1/requests/{request_id}/query",
                headers=_as(Role.DEAN),
            )
            assert status_view.json()["is_dean_mediated"] is True
            assert status_view.json()["return_status"] == "chairman_approval"

            resumed = await _act(
                client,
                request_id,
                Role.DEAN,
                "query_and_reapprove",
                query_response="Requester justified the purchase",
            )
            assert resumed["status"] == "chairman_approval"
            assert resumed["pending_query"] is False

            final = await _act(client, request_id, Role.CHAIRMAN, "approve")
            assert final["status"] == "approved"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.usefixtures("local_auth")
async def test_action_errors_map_to_http_statuses() -> None:
    engine = await _make_engine()
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await _seed_role_users(session_maker)
    app = _build_test_app(session_maker)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            request_id = (await _create(client, cost=1000))["id"]

            wrong_role = await client.post(
                f"/api/v1/requests/{request_id}/actions",
                headers=_as(Role.VP),
                json={"action": "approve"},
            )
            assert wrong_role.status_code == 403
            assert wrong_role.json()["detail"] == (
                "Only Institution Manager can act on requests at manager_review"
            )

            no_notes = await client.post(
                f"/api/v1/requests/{request_id}/actions",
                headers=_as(Role.INSTITUTION_MANAGER),
                json={"action": "reject"},
            )
            assert no_notes.status_code == 422
            assert no_notes.json()["detail"] == "Notes are required when rejecting a request"

            missing = await client.post(
                "/api/v1/requests/00000000-0000-0000-0000-000000000000/actions",
                headers=_as(Role.INSTITUTION_MANAGER),
                json={"action": "approve"},
            )
            assert missing.status_code == 404

            forbidden_create = await client.post(
                "/api/v1/requests",
                headers=_as(Role.DEAN),
                json={"title": "Not mine to open"},
            )
            assert forbidden_create.status_code == 403
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.usefixtures("local_auth")
async def test_local_auth_requires_token_and_known_actor() -> None:
    engine = await _make_engine()
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await _seed_role_users(session_maker)
    app = _build_test_app(session_maker)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            missing = await client.get("/api/v1/users/me")
            assert missing.status_code == 401

            no_actor = await client.get(
                "/api/v1/users/me",
                headers={"Authorization": f"Bearer {TOKEN}"},
            )
            assert no_actor.status_code == 401
            assert no_actor.json()["detail"] == "X-Actor-Email header is required"

            unknown = await client.get(
                "/api/v1/users/me",
                headers={
                    "Authorization": f"Bearer {TOKEN}",
                    auth_module.ACTOR_EMAIL_HEADER: "nobody@institution.edu",
                },
            )
            assert unknown.status_code == 401

            me = await client.get("/api/v1/users/me", headers=_as(Role.DEAN))
            assert me.status_code == 200
            assert me.json()["role"] == "dean"
            assert me.json()["role_name"] == "Dean"

            inbox = await client.get("/api/v1/approvals", headers=_as(Role.REQUESTER))
            assert inbox.status_code == 403
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@pytest.mark.usefixtures("local_auth")
async def test_dashboard_counts_follow_visibility() -> None:
    engine = await _make_engine()
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await _seed_role_users(session_maker)
    app = _build_test_app(session_maker)

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            first = (await _create(client, cost=1000))["id"]
            second = (await _create(client, cost=2000))["id"]
            await _create(client, cost=3000)
            await _act(client, first, Role.INSTITUTION_MANAGER, "approve")
            await _act(client, second, Role.INSTITUTION_MANAGER, "reject", notes="Duplicate")

            manager = await client.get(
                "/api/v1/dashboard/stats",
                headers=_as(Role.INSTITUTION_MANAGER),
            )
            assert manager.status_code == 200
            assert manager.json() == {
                "total": 3,
                "pending": 1,
                "approved": 1,
                "rejected": 1,
                "in_progress": 0,
            }

            requester = await client.get("/api/v1/dashboard/stats", headers=_as(Role.REQUESTER))
            assert requester.json()["total"] == 3
            assert requester.json()["rejected"] == 1

            vp = await client.get("/api/v1/dashboard/stats", headers=_as(Role.VP))
            assert vp.json()["total"] == 0
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_workflow_approvers_lookup_needs_no_auth() -> None:
    app = FastAPI()
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(workflow_router)
    app.include_router(api_v1)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as client:
        parallel = await client.get("/api/v1/workflow/statuses/parallel_verification/approvers")
        assert parallel.status_code == 200
        assert parallel.json() == {
            "status": "parallel_verification",
            "roles": ["accountant", "sop_verifier"],
            "role_names": ["Accountant", "SOP Verifier"],
        }

        terminal = await client.get("/api/v1/workflow/statuses/approved/approvers")
        assert terminal.json()["roles"] == []

        unknown = await client.get("/api/v1/workflow/statuses/nowhere/approvers")
        assert unknown.status_code == 422
