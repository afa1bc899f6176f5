"""FastAPI application entry point.

Application wiring: lifespan, middleware stack, router mounting, exception handlers.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from chatter.config import get_settings
from chatter.database import DatabasePool
from chatter.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ChatterError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from chatter.routers import auth, groups, health, messages, users
from chatter.routers.websocket import router as ws_router
from chatter.services.auth_service import SessionIdentityVerifier
from chatter.services.persistence import PersistenceGateway
from chatter.services.realtime_gateway import RealtimeGateway

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Open the database pool and start the realtime gateway; clean up on shutdown."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    # -- Database Pool --
    db_pool = DatabasePool.from_url(settings.database_url)
    await db_pool.initialize()

    write_conn = db_pool.writer
    application.state.db_pool = db_pool
    application.state.db = write_conn

    # -- Realtime gateway --
    gateway = RealtimeGateway(
        PersistenceGateway(write_conn),
        SessionIdentityVerifier(write_conn),
        settings=settings,
    )
    await gateway.start()
    application.state.gateway = gateway

    yield

    # -- Shutdown --
    await gateway.stop()
    await db_pool.close()


# ---------------------------------------------------------------------------
# Custom Middleware
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status_code, duration_ms for every request."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start_time) * 1000

        logger.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return a standard JSON 500 response."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Unhandled exception on %s %s: %s",
                request.method,
                request.url.path,
                exc,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error"},
            )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(title="Chatter", lifespan=lifespan)

# -- Middleware stack (add_middleware wraps outermost-first, so add in reverse) --
# Order: CORS -> RequestLogging -> ErrorHandling

settings = get_settings()

# 1. CORS (outermost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Cookie"],
    allow_credentials=True,
)

# 2. Request logging
app.add_middleware(RequestLoggingMiddleware)

# 3. Error handling (innermost)
app.add_middleware(ErrorHandlingMiddleware)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

_STATUS_BY_ERROR: dict[type[ChatterError], int] = {
    AuthenticationError: 401,
    ValidationError: 400,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    PersistenceError: 500,
}


@app.exception_handler(ChatterError)
async def chatter_error_handler(request: Request, exc: ChatterError):
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500
    )
    return JSONResponse(status_code=status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report body/query validation failures as 400 with the first problem."""
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": detail})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Normalize HTTPException responses to use the standard error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
    )


# -- Routers --
app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(groups.router, prefix="/groups", tags=["groups"])
app.include_router(messages.router, prefix="/messages", tags=["messages"])
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(ws_router)
