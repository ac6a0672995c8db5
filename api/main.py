"""
api/main.py -- FastAPI application entry point for Gatekeeper.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan owns every stateful component: the credential store, the session
manager and the directory service are built on startup, stored on
app.state, and closed on shutdown. Nothing is a module-level global, so tests
swap in their own instances by replacing the lifespan.

Route handlers are plain `def` functions: FastAPI runs them in its worker
thread pool, one thread per in-flight request, which is what the blocking
bcrypt and SQLite calls underneath need.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_messages
from auth.directory import DirectoryService
from auth.errors import DirectoryError
from auth.hashing import PasswordHasher
from auth.sessions import SessionManager
from auth.store import CredentialStore
from core.config import get_settings
from core.logs import configure_logging

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

configure_logging()
logger = logging.getLogger("gatekeeper.api")

_settings = get_settings()

# Error kind -> HTTP status. The auth/ layer knows kinds, only this module
# knows status codes.
_STATUS_BY_KIND: dict[str, int] = {
    "invalid_input": 400,
    "unauthenticated": 401,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
}

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired and revoked session rows every `interval` seconds.

    The purge itself is a blocking DB call, so it runs in a worker thread.
    A cancel that lands mid-purge waits for the thread to finish before
    re-raising, so shutdown never closes the engine under a running purge.
    """
    while True:
        await asyncio.sleep(interval)
        purge = asyncio.ensure_future(asyncio.to_thread(app.state.sessions.purge_expired))
        try:
            removed = await asyncio.shield(purge)
        except asyncio.CancelledError:
            await purge
            raise
        if removed:
            logger.info("Purged %d dead session(s)", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth components on startup; drain them on shutdown.

    Startup order matters: store and session manager first, the directory
    service that composes them second, the optional admin bootstrap third,
    and the purge task last because it references app.state.sessions.
    """
    logger.info("Gatekeeper API starting up")
    app.state.user_store = CredentialStore(_settings.database_url)
    app.state.sessions = SessionManager(
        _settings.database_url,
        secret_key=_settings.secret_key,
        default_ttl=_settings.session_ttl_seconds,
    )
    app.state.directory = DirectoryService(
        app.state.user_store,
        app.state.sessions,
        PasswordHasher(rounds=_settings.bcrypt_rounds),
        session_ttl=_settings.session_ttl_seconds,
    )
    if _settings.admin_email:
        app.state.directory.bootstrap_admin(_settings.admin_name, _settings.admin_email, _settings.admin_password)
    logger.info("Auth initialized (session_ttl=%ds)", _settings.session_ttl_seconds)
    app.state.purge_task = asyncio.create_task(_purge_loop(app, _settings.session_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.purge_task
    app.state.sessions.close()
    app.state.user_store.close()
    logger.info("Gatekeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatekeeper API",
    description="Authentication, sessions and user management.",
    version=VERSION,
    lifespan=lifespan,
    # Interactive docs only in development.
    docs_url="/docs" if _settings.debug else None,
    redoc_url="/redoc" if _settings.debug else None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "Accept-Language"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs method, path, status and latency. Headers are never logged, so the
# Authorization header and the session cookie stay out of the log; the
# token-redacting filter from core.logs backs this up.
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

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly. The message is localized from the request's
# Accept-Language header; the code is stable across locales.
# ---------------------------------------------------------------------------


@app.exception_handler(DirectoryError)
async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
    messages = get_messages(request)
    detail = {field: messages.get_many(keys) for field, keys in exc.details.items()} or None
    response = JSONResponse(
        status_code=_STATUS_BY_KIND.get(exc.kind, 500),
        content=ErrorResponse(
            error=ErrorDetail(code=exc.kind, message=messages.get(exc.message_key), detail=detail)
        ).model_dump(),
    )
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message=get_messages(request).get("errors.rate_limited"),
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are InvalidInput too: 400 with per-field messages."""
    messages = get_messages(request)
    detail: dict[str, list[str]] = {}
    for err in exc.errors():
        field = str(err["loc"][-1]) if err.get("loc") else "body"
        key = "validation.field.required" if err.get("type") == "missing" else "validation.field.invalid"
        detail.setdefault(field, []).append(messages.get(key))
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="invalid_input",
                message=messages.get("errors.invalid_input"),
                detail=detail or None,
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
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

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message=get_messages(request).get("errors.internal_error"),
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
