from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi import WebSocket, WebSocketDisconnect

from tracker.core.settings import get_app_settings
from tracker.core.security import decode_token
from tracker.core.logging import configure_logging, correlation_id_var, tenant_id_var
from tracker.db.run_migrations import run_alembic
from tracker.db.seed import seed_all
from tracker.domain.exceptions import (
    InvalidOverrideState,
    InvalidReleaseQuantity,
    InvalidTransition,
    LockedForEdit,
    PermissionDenied,
    QuantityExceeded,
    RecordNotFound,
    StepQuantityExceeded,
    TrackerError,
)
from tracker.schemas.common import ErrorInfo, ErrorResponse, MessageResponse
from tracker.services.realtime import broadcast_manager

# Routers
from tracker.api.routes.production import router as production_router
from tracker.api.routes.quality import router as quality_router
from tracker.api.routes.drawing_batches import router as drawing_batches_router

settings = get_app_settings()

# Configure structured logging once at import
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Health", "description": "Liveness and readiness probes."},
    {"name": "Production", "description": "Work items, quantity ledger and production releases."},
    {"name": "Quality", "description": "Inspections, step results, header overrides and templates."},
    {"name": "Drawing Batches", "description": "Drawing batch text parsing, formatting and spreadsheet paste."},
]

# domain error -> HTTP status
ERROR_STATUS: Dict[type, int] = {
    QuantityExceeded: 409,
    InvalidReleaseQuantity: 422,
    StepQuantityExceeded: 409,
    InvalidOverrideState: 409,
    LockedForEdit: 423,
    InvalidTransition: 409,
    RecordNotFound: 404,
    PermissionDenied: 403,
}

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Enrich request context with correlation_id and tenant_id for logging and error responses.
    Adds 'X-Correlation-ID' to every response.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    tenant = request.headers.get("X-Tenant-ID")
    token_corr = correlation_id_var.set(corr)
    token_tenant = tenant_id_var.set(tenant)
    request.state.correlation_id = corr
    request.state.tenant_id = tenant

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token_corr)
        tenant_id_var.reset(token_tenant)

    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    ts = datetime.now(tz=timezone.utc)
    corr = getattr(request.state, "correlation_id", None)
    tenant = getattr(request.state, "tenant_id", None)
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=corr,
        tenant_id=tenant,
        path=request.url.path,
        method=request.method,
        timestamp=ts,
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    """
    Domain errors are expected, user-correctable outcomes: the code and
    structured details are passed through unchanged.
    """
    status_code = next((s for cls, s in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    logger.warning("Refused %s %s: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return _build_error_response(
        request=request,
        status_code=status_code,
        error_type=exc.code,
        message=exc.message,
        details=exc.details(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Global handler for request validation errors with a standard structure.
    """
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=jsonable_errors(exc),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic puts the offending exception object into ctx; keep only its text
    out = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        out.append(err)
    return out


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler to avoid leaking stack traces and to return a structured error.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and optional seeding on service startup.

    Alembic's env.py drives its own event loop, so the upgrade runs in a
    worker thread. Seeding is opt-in via settings.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)
            # Do not crash the app in case of transient DB issues; rely on retries or later readiness probes.

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")

# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """
    Basic liveness health check endpoint.

    Returns:
        MessageResponse: Simple confirmation that the service is running.
    """
    return MessageResponse(message="Healthy")


# documented in the OpenAPI export; websockets have no OpenAPI operation
WEBSOCKET_ENDPOINTS = [
    {
        "path": "/ws/delivery",
        "summary": "Delivery requests for releases approved by inspection (server push).",
        "query": ["token"],
        "headers": ["X-Tenant-ID"],
        "messages": {
            "client_to_server": ["ping"],
            "server_to_client": ["delivery.requested"],
        },
    }
]


# Include all routers under /api/v1
api_v1.include_router(production_router)
api_v1.include_router(quality_router)
api_v1.include_router(drawing_batches_router)

# Attach api_v1 to app
app.include_router(api_v1)


async def _reject_ws(websocket: WebSocket, code: int) -> None:
    await websocket.close(code=code)
    raise WebSocketDisconnect(code=code)


async def _validate_ws(websocket: WebSocket) -> tuple[str, str]:
    """
    Validate an accepted WebSocket by its 'token' query param and 'X-Tenant-ID' header.

    Returns:
        (tenant_id, user_id)
    Raises:
        WebSocketDisconnect after closing the socket with 4401/4403 when invalid.
    """
    token = websocket.query_params.get("token")
    tenant_id = websocket.headers.get("x-tenant-id")
    if not token or not tenant_id:
        await _reject_ws(websocket, 4401)

    try:
        claims = decode_token(token)
    except Exception:
        logger.warning("WebSocket rejected: invalid token")
        await _reject_ws(websocket, 4401)

    if str(claims.get("tenant_id")) != str(tenant_id):
        await _reject_ws(websocket, 4403)

    user_id = claims.get("sub")
    if not user_id:
        await _reject_ws(websocket, 4401)

    return str(tenant_id), str(user_id)


# PUBLIC_INTERFACE
@app.websocket("/ws/delivery")
async def ws_delivery(websocket: WebSocket):
    """
    WebSocket endpoint streaming delivery requests for approved releases.

    Security:
      - Query param 'token' must be a valid JWT.
      - Header 'X-Tenant-ID' must match JWT tenant_id.
    Messages:
      - Server -> Client: type='delivery.requested' payload=DeliveryRequest
      - Client -> Server: optional 'ping' to keepalive; other messages ignored.
    """
    await websocket.accept()
    try:
        tenant_id, user_id = await _validate_ws(websocket)
    except WebSocketDisconnect:
        return

    topic = broadcast_manager.delivery_topic(tenant_id)
    await broadcast_manager.connect(topic, websocket)
    try:
        while True:
            msg = await websocket.receive_text()
            if msg and msg.lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        await broadcast_manager.disconnect(topic, websocket)
    except Exception:
        logger.exception("Error on ws_delivery connection for user %s", user_id)
        await broadcast_manager.disconnect(topic, websocket)
        await websocket.close()
