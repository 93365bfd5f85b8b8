"""FastAPI application for Secudo, the security-assessment workspace.

Endpoints:
  GET    /health                              — Health check
  POST   /auth/register                       — Create an account (global Viewer)
  POST   /auth/login                          — Exchange credentials for a bearer token
  GET    /auth/me                             — Current session
  GET    /users                               — List accounts (Admin/Editor)
  PATCH  /users/{id}/role                     — Change a global role
  GET    /projects                            — Visible active projects
  POST   /projects                            — Create a project
  GET    /projects/trash                      — Trashed projects with retention info
  GET    /projects/{id}                       — Project with members and capabilities
  PUT    /projects/{id}                       — Update settings
  DELETE /projects/{id}                       — Move to trash (?permanent=true purges)
  POST   /projects/{id}/restore               — Restore from trash
  *      /projects/{id}/members[/{user_id}]   — Membership management and bulk invites
  *      /groups[/{id}[/members[/{user_id}]]] — User groups (Admin)
  *      /projects/{id}/nodes[/{node_id}]     — System model nodes
  GET    /projects/{id}/model/hierarchy       — Node forest
  *      /projects/{id}/savepoints            — Model snapshots
  POST   /risk/score, /risk/matrix            — Risk scoring
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

import secudo
from secudo.api.ratelimit import limiter
from secudo.api.routes import (
    auth,
    groups,
    members,
    nodes,
    projects,
    risk,
    savepoints,
    users,
)
from secudo.auth_providers.user_account import ensure_initial_admin
from secudo.config import settings
from secudo.exceptions import SecudoError, ValidationError
from secudo.logging_config import log_startup_info, setup_logging
from secudo.storage.database import Database
from secudo.trash import TrashManager

logger = logging.getLogger("secudo")
_audit_logger = logging.getLogger("secudo.audit")

_STARTUP_TIME: float = 0.0

_db = Database(settings.db_path)


async def initialize_state(application: FastAPI, db: Database) -> TrashManager:
    """Attach the connected database and trash manager to *application*.

    Soft-delete support is read from the live schema exactly once here.
    """
    supports_deleted_at = await db.supports_project_deleted_at()
    trash = TrashManager(db, supports_deleted_at)
    application.state.db = db
    application.state.trash = trash
    return trash


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _STARTUP_TIME
    _STARTUP_TIME = time.monotonic()
    setup_logging()
    await _db.connect()
    if settings.migrations_enabled:
        applied = await _db.run_migrations()
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))
    trash = await initialize_state(app, _db)

    if settings.initial_admin_password:
        await ensure_initial_admin(
            _db, settings.initial_admin_email, settings.initial_admin_password
        )

    log_startup_info(trash.supports_deleted_at)
    yield
    logger.info("Closing database connection")
    await _db.close()
    logger.info("Shutdown complete")


_OPENAPI_TAGS = [
    {"name": "Health", "description": "Health checks and version info"},
    {"name": "Auth", "description": "Registration, login and session info"},
    {"name": "Users", "description": "Global role administration"},
    {"name": "Projects", "description": "Projects, visibility, trash and restore"},
    {"name": "Members", "description": "Project memberships and roles"},
    {"name": "Groups", "description": "User groups for bulk project invites"},
    {"name": "Model", "description": "System model containers and components"},
    {"name": "Savepoints", "description": "Snapshots of the system model"},
    {"name": "Risk", "description": "Risk scoring and matrices"},
    {"name": "Metrics", "description": "Prometheus metrics endpoint"},
]

app = FastAPI(
    title="Secudo",
    description="Multi-tenant workspace for security assessments of system models.",
    version=secudo.__version__,
    lifespan=lifespan,
    openapi_tags=_OPENAPI_TAGS,
)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(SecudoError)
async def secudo_error_handler(request: Request, exc: SecudoError) -> JSONResponse:
    """Centralized handler for Secudo exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    content = {
        "error": exc.error_type,
        "message": exc.message,
        "request_id": request_id,
    }
    if isinstance(exc, ValidationError) and exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters are reported as 400 ``invalid_input``."""
    request_id = getattr(request.state, "request_id", "unknown")
    details = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalid_input",
            "message": "Request validation failed",
            "request_id": request_id,
            "details": details,
        },
    )


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After header on rate limit."""
    request_id = getattr(request.state, "request_id", "unknown")
    _audit_logger.warning(
        "Rate limit exceeded: %s %s from %s",
        request.method,
        request.url.path,
        get_remote_address(request),
        extra={"action": "rate_limit_exceeded", "request_id": request_id},
    )
    response = JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": str(exc.detail),
            "request_id": request_id,
        },
    )
    response.headers["Retry-After"] = "60"
    return response


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception(
        "Unhandled error on %s %s [%s]",
        request.method,
        request.url.path,
        request_id,
        extra={"request_id": request_id, "path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An internal error occurred",
            "request_id": request_id,
        },
    )


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def security_headers_middleware(request: Request, call_next) -> Response:
    response: Response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"
    return response


# ---------------------------------------------------------------------------
# Request logging middleware (also sets request_id on state for error handlers)
# ---------------------------------------------------------------------------
@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    request_id = str(uuid4())[:8]
    request.state.request_id = request_id
    start = time.monotonic()
    response: Response = await call_next(request)
    elapsed_ms = round((time.monotonic() - start) * 1000, 1)
    logger.info(
        "%s %s %s %.1fms [%s]",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request_id,
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "duration_ms": elapsed_ms,
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Prometheus metrics
# ---------------------------------------------------------------------------
_instrumentator = Instrumentator(
    excluded_handlers=["/metrics"],
    should_respect_env_var=False,
)
_instrumentator.instrument(app).expose(app, endpoint="/metrics", tags=["Metrics"])


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.get("/health", tags=["Health"], summary="Health check")
@limiter.exempt
async def health(request: Request):
    uptime_s = time.monotonic() - _STARTUP_TIME if _STARTUP_TIME > 0 else 0
    trash: TrashManager | None = getattr(request.app.state, "trash", None)
    return {
        "status": "ok",
        "version": secudo.__version__,
        "uptime_seconds": round(uptime_s, 1),
        "project_trash": bool(trash and trash.supports_deleted_at),
    }


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(projects.router)
app.include_router(members.router)
app.include_router(groups.router)
app.include_router(nodes.router)
app.include_router(savepoints.router)
app.include_router(risk.router)
