"""Request-id propagation, request logging, and uniform JSON error responses."""

from __future__ import annotations

from time import perf_counter
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
_HEALTH_PATHS = frozenset({"/health", "/healthz", "/readyz"})
_INTERNAL_ERROR_DETAIL = "Internal Server Error"


class RequestContextMiddleware:
    """Assign a request id to every HTTP request and log its completion."""

    def __init__(self, app: ASGIApp) -> None:
        self._app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope) or uuid4().hex
        scope.setdefault("state", {})["request_id"] = request_id
        started = perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        async def _send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = int(message["status"])
                headers = list(message.get("headers", []))
                header_name = REQUEST_ID_HEADER.lower().encode()
                # Error handlers already echo the id on their responses.
                if all(key.lower() != header_name for key, _ in headers):
                    headers.append((header_name, request_id.encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self._app(scope, receive, _send)
        finally:
            _log_request(
                scope,
                request_id=request_id,
                status_code=status_code,
                duration_ms=(perf_counter() - started) * 1000,
            )


def _incoming_request_id(scope: Scope) -> str | None:
    header_name = REQUEST_ID_HEADER.lower().encode()
    for key, value in scope.get("headers", []):
        if key.lower() == header_name:
            cleaned = value.decode("latin-1").strip()
            return cleaned or None
    return None


def _log_request(
    scope: Scope,
    *,
    request_id: str,
    status_code: int,
    duration_ms: float,
) -> None:
    path = str(scope.get("path", ""))
    if path in _HEALTH_PATHS and not settings.request_log_include_health:
        return
    extra: dict[str, object] = {
        "request_id": request_id,
        "method": scope.get("method"),
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
    }
    threshold = settings.request_log_slow_ms
    if threshold and duration_ms >= threshold:
        logger.warning("http.request.slow", extra={**extra, "slow_threshold_ms": threshold})
        return
    logger.info("http.request.complete", extra=extra)


def _get_request_id(request: Request) -> str | None:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return None


def _json_safe(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {str(key): _json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _error_payload(*, detail: Any, request_id: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"detail": detail}
    if request_id is not None:
        payload["request_id"] = request_id
    return payload


def _response(
    request: Request,
    *,
    status_code: int,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    response_headers = dict(headers or {})
    request_id = payload.get("request_id")
    if isinstance(request_id, str):
        response_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(payload),
        headers=response_headers or None,
    )


async def _request_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        msg = "Expected RequestValidationError"
        raise TypeError(msg)
    payload = _error_payload(detail=_json_safe(exc.errors()), request_id=_get_request_id(request))
    return _response(request, status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, payload=payload)


async def _response_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, ResponseValidationError):
        msg = "Expected ResponseValidationError"
        raise TypeError(msg)
    request_id = _get_request_id(request)
    logger.error(
        "http.response.validation_failed",
        extra={"request_id": request_id, "errors": _json_safe(exc.errors())},
    )
    payload = _error_payload(detail=_INTERNAL_ERROR_DETAIL, request_id=request_id)
    return _response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        payload=payload,
    )


async def _http_exception_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        msg = "Expected StarletteHTTPException"
        raise TypeError(msg)
    payload = _error_payload(detail=_json_safe(exc.detail), request_id=_get_request_id(request))
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        payload["code"] = code
    retryable = getattr(exc, "retryable", None)
    if isinstance(retryable, bool):
        payload["retryable"] = retryable
    return _response(
        request,
        status_code=exc.status_code,
        payload=payload,
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = _get_request_id(request)
    logger.error(
        "http.request.unhandled_exception",
        extra={"request_id": request_id, "error_type": exc.__class__.__name__},
        exc_info=exc,
    )
    payload = _error_payload(detail=_INTERNAL_ERROR_DETAIL, request_id=request_id)
    return _response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        payload=payload,
    )


def install_error_handling(app: FastAPI) -> None:
    """Register request-id middleware and JSON exception handlers on `app`."""
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
