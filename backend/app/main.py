"""FastAPI application entrypoint and router wiring for the approval service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi_pagination import add_pagination

from app.api.approvals import router as approvals_router
from app.api.dashboard import router as dashboard_router
from app.api.queries import router as queries_router
from app.api.requests import router as requests_router
from app.api.users import router as users_router
from app.api.workflow import router as workflow_router
from app.core.config import settings
from app.core.error_handling import install_error_handling
from app.core.logging import configure_logging, get_logger
from app.db.session import init_db
from app.schemas.errors import ErrorResponse
from app.schemas.health import HealthStatusResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": "Service liveness/readiness probes used by infrastructure checks.",
    },
    {
        "name": "requests",
        "description": "Purchase request creation, detail, and workflow actions.",
    },
    {
        "name": "approvals",
        "description": "Approver inbox filtered by the caller's role and involvement.",
    },
    {
        "name": "queries",
        "description": "Requests whose open query round awaits the caller's response.",
    },
    {
        "name": "dashboard",
        "description": "Per-user counters over visible requests.",
    },
    {
        "name": "workflow",
        "description": "Read-only lookups into the approval transition table.",
    },
    {
        "name": "users",
        "description": "Current user identity and workflow role.",
    },
]

_DOCUMENTED_TAGS = {"requests", "approvals", "queries", "dashboard", "workflow", "users"}
_GENERIC_RESPONSE_DESCRIPTIONS = {"Successful Response", "Validation Error"}
_HTTP_RESPONSE_DESCRIPTIONS = {
    "200": "Request completed successfully.",
    "201": "Resource created successfully.",
    "401": "Caller is not authenticated or is not a known user.",
    "403": "Caller's role may not perform this operation.",
    "404": "Requested purchase request was not found.",
    "409": "Request was modified concurrently; reload and retry.",
    "422": "Request payload failed validation.",
    "500": "Workflow could not resolve the requested transition.",
}
# Error statuses every authenticated workflow route may return.
_WORKFLOW_ERROR_STATUSES = ("401", "403", "404", "409")
_ERROR_SCHEMA_REF = {"$ref": "#/components/schemas/ErrorResponse"}


def _build_operation_summary(*, method: str, path: str) -> str:
    """Build a readable summary when an operation does not define one."""
    prefix = "List" if method.lower() == "get" else "Submit"
    parts = [
        part.replace("-", " ")
        for part in path.removeprefix("/api/v1/").split("/")
        if part and not (part.startswith("{") and part.endswith("}"))
    ]
    return f"{prefix} {' '.join(parts)}".strip().title()


def _normalize_operation_docs(
    *,
    operation: dict[str, Any],
    method: str,
    path: str,
) -> None:
    summary = str(operation.get("summary", "")).strip()
    if not summary:
        summary = _build_operation_summary(method=method, path=path)
        operation["summary"] = summary
    if not str(operation.get("description", "")).strip():
        operation["description"] = f"{summary}."

    responses = operation.setdefault("responses", {})
    for status_code in _WORKFLOW_ERROR_STATUSES:
        responses.setdefault(
            status_code,
            {"content": {"application/json": {"schema": _ERROR_SCHEMA_REF}}},
        )
    for status_code, response in responses.items():
        if not isinstance(response, dict):
            continue
        existing = str(response.get("description", "")).strip()
        if not existing or existing in _GENERIC_RESPONSE_DESCRIPTIONS:
            response["description"] = _HTTP_RESPONSE_DESCRIPTIONS.get(
                str(status_code),
                "Request processed.",
            )


def _build_custom_openapi(fastapi_app: FastAPI) -> dict[str, Any]:
    """Generate the OpenAPI schema with workflow error responses documented."""
    if fastapi_app.openapi_schema:
        return fastapi_app.openapi_schema
    openapi_schema = get_openapi(
        title=fastapi_app.title,
        version=fastapi_app.version,
        openapi_version=fastapi_app.openapi_version,
        description=fastapi_app.description,
        routes=fastapi_app.routes,
        tags=fastapi_app.openapi_tags,
        servers=fastapi_app.servers,
    )
    components = openapi_schema.setdefault("components", {}).setdefault("schemas", {})
    components.setdefault("ErrorResponse", ErrorResponse.model_json_schema())
    for path, path_item in openapi_schema.get("paths", {}).items():
        for method, operation in path_item.items():
            if not isinstance(operation, dict):
                continue
            if not _DOCUMENTED_TAGS.intersection(operation.get("tags", [])):
                continue
            _normalize_operation_docs(operation=operation, method=method, path=path)
    fastapi_app.openapi_schema = openapi_schema
    return fastapi_app.openapi_schema


class WorkflowFastAPI(FastAPI):
    """FastAPI application with custom OpenAPI normalization."""

    def openapi(self) -> dict[str, Any]:
        return _build_custom_openapi(self)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Initialize application resources before serving requests."""
    logger.info(
        "app.lifecycle.starting environment=%s db_auto_migrate=%s",
        settings.environment,
        settings.db_auto_migrate,
    )
    await init_db()
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        logger.info("app.lifecycle.stopped")


app = WorkflowFastAPI(
    title="Purchase Approval Workflow API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
    logger.info("app.cors.enabled origins_count=%s", len(origins))
else:
    logger.info("app.cors.disabled")

install_error_handling(app)


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Check",
    description="Lightweight liveness probe endpoint.",
    responses={
        status.HTTP_200_OK: {
            "description": "Service is alive.",
            "content": {"application/json": {"example": {"ok": True}}},
        }
    },
)
def health() -> HealthStatusResponse:
    """Lightweight liveness probe endpoint."""
    return HealthStatusResponse(ok=True)


@app.get(
    "/healthz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Alias Check",
    description="Alias liveness probe endpoint for platform compatibility.",
    responses={
        status.HTTP_200_OK: {
            "description": "Service is alive.",
            "content": {"application/json": {"example": {"ok": True}}},
        }
    },
)
def healthz() -> HealthStatusResponse:
    """Alias liveness probe endpoint for platform compatibility."""
    return HealthStatusResponse(ok=True)


@app.get(
    "/readyz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Readiness Check",
    description="Readiness probe endpoint for service orchestration checks.",
    responses={
        status.HTTP_200_OK: {
            "description": "Service is ready.",
            "content": {"application/json": {"example": {"ok": True}}},
        }
    },
)
def readyz() -> HealthStatusResponse:
    """Readiness probe endpoint for service orchestration checks."""
    return HealthStatusResponse(ok=True)


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(requests_router)
api_v1.include_router(approvals_router)
api_v1.include_router(queries_router)
api_v1.include_router(dashboard_router)
api_v1.include_router(workflow_router)
api_v1.include_router(users_router)
app.include_router(api_v1)

add_pagination(app)
logger.debug("app.routes.registered count=%s", len(app.routes))
