"""
api/main.py -- FastAPI application entry point for BranchDesk.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- one log line per request with latency
  2. audit_requests        -- appends SecurityLogEntry rows for auth events
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds the single database Engine and injects it into every store,
then wires the auth services on app.state. Nothing in auth/ or audit/ holds a
module-level store or engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.security_logs import router as security_logs_router
from audit.models import SecurityLogEntry
from audit.service import SecurityAudit
from audit.store import SecurityLogStore
from auth.dependencies import SessionRequired
from auth.guard import SessionGuard
from auth.session import SessionService
from auth.store import AccountStore, TokenStore
from auth.tokens import TokenCodec, clear_session_cookie
from core.config import get_settings
from core.db import create_db_engine

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("branchdesk.api")

_settings = get_settings()

# Requests to these paths are always audited, whatever their status.
_AUDITED_PATHS = frozenset({"/api/v1/auth/login", "/api/v1/auth/logout", "/login", "/logout"})
_AUDITED_STATUSES = frozenset({401, 403})


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def attach_services(app: FastAPI, engine: Engine) -> None:
    """Build every store and service on one engine and publish them on app.state.

    Called by the lifespan on startup and by tests with an in-memory engine.
    """
    settings = get_settings()
    app.state.engine = engine
    app.state.account_store = AccountStore(engine)
    app.state.token_store = TokenStore(engine)
    app.state.security_logs = SecurityLogStore(engine)
    app.state.codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)
    app.state.guard = SessionGuard(app.state.codec, app.state.token_store)
    app.state.sessions = SessionService(
        app.state.account_store,
        app.state.token_store,
        app.state.codec,
        settings.session_cookie_max_age,
    )
    app.state.audit = SecurityAudit(app.state.security_logs)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the engine and services on startup; dispose the pool on shutdown."""
    logger.info("BranchDesk API starting up")
    engine = create_db_engine(_settings.database_url)
    attach_services(app, engine)
    logger.info("Auth services initialized")

    yield

    engine.dispose()
    logger.info("BranchDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="BranchDesk API",
    description="Back-office authentication, sessions and security audit log.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Each add_middleware() or @app.middleware registration wraps everything
# registered before it, so the last one registered is the outermost.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Audit middleware
#
# Appends one SecurityLogEntry per authentication-relevant request: every
# call to a login/logout path and every 401/403 response. Route handlers and
# auth dependencies attribute the request by setting request.state.account_id.
# A failed audit write is logged and does not change the response.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def audit_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    if request.url.path not in _AUDITED_PATHS and response.status_code not in _AUDITED_STATUSES:
        return response

    entry = SecurityLogEntry(
        account_id=getattr(request.state, "account_id", None),
        method=request.method,
        url=request.url.path,
        status=response.status_code,
        ip=request.client.host if request.client else None,
        response_time_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    try:
        await run_in_threadpool(request.app.state.security_logs.append, entry)
    except SQLAlchemyError:
        logger.exception("Failed to append security log entry for %s %s", request.method, request.url.path)
    return response


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(security_logs_router, prefix="/api/v1", tags=["Security Logs"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(SessionRequired)
async def session_required_handler(request: Request, exc: SessionRequired) -> JSONResponse:
    """Return 401 and clear a cookie that no longer maps to a session."""
    response = JSONResponse(
        status_code=401,
        content=ErrorResponse(
            error=ErrorDetail(code="unauthorized", message="Authentication required.")
        ).model_dump(exclude_none=True),
    )
    if exc.result.clear_cookie:
        clear_session_cookie(response)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {code, message} dict as detail.
    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router
# registration state. No auth -- load balancers must reach it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    components = {"app": "ok", "database": "ok"}
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    return HealthResponse(version=VERSION, components=components)
