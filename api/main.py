"""
api/main.py -- FastAPI application entry point for Lodgekeeper.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one log line per request with latency

Lifespan builds the auth object graph on startup and tears it down on
shutdown: AuthStore -> CredentialStore -> TokenCodec / SessionManager /
Mailer -> AuthFlows, all hung off app.state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.credentials import CredentialStore
from auth.errors import AuthError, TokenError, ValidationError
from auth.flows import AuthFlows
from auth.notifications import LogChannel, Mailer, NotificationChannel
from auth.sessions import SessionManager
from auth.store import AuthStore
from auth.tokens import TokenCodec, TokenPurpose
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("lodgekeeper.api")


# ---------------------------------------------------------------------------
# Object graph
# ---------------------------------------------------------------------------


def build_auth(
    settings: Settings,
    store: AuthStore,
    channel: NotificationChannel,
    executor: ThreadPoolExecutor | None = None,
) -> AuthFlows:
    """Wire the auth components together. Shared by lifespan and tests."""
    credentials = CredentialStore(store, password_min_length=settings.password_min_length)
    return AuthFlows(
        credentials=credentials,
        codec=TokenCodec(settings.secret_key),
        sessions=SessionManager(store, credentials),
        mailer=Mailer(channel, executor),
        expiry={
            TokenPurpose.PASSWORD_RESET: timedelta(seconds=settings.password_reset_expire_seconds),
            TokenPurpose.EMAIL_CONFIRMATION: timedelta(seconds=settings.email_confirmation_expire_seconds),
        },
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The mail executor is shut down before the store is disposed so
    in-flight deliveries finish first.
    """
    logger.info("Lodgekeeper API starting up")
    settings = get_settings()
    app.state.settings = settings
    app.state.store = AuthStore(db_url=settings.database_url)
    app.state.mail_executor = ThreadPoolExecutor(max_workers=settings.mail_workers, thread_name_prefix="mail")
    app.state.auth = build_auth(settings, app.state.store, LogChannel(), app.state.mail_executor)
    logger.info("Auth initialized")

    yield

    app.state.mail_executor.shutdown(wait=True)
    app.state.store.close()
    logger.info("Lodgekeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Lodgekeeper API",
    description="Sessions, password reset and email confirmation for the Lodgekeeper rental backend.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)


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


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {"errors": [...]} envelope so clients parse
# failures uniformly.
# ---------------------------------------------------------------------------


def _errors(status_code: int, messages: list[str]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(errors=messages).model_dump())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """422 for validation failures, 401 for everything else.

    TokenError renders only its public message; the failing check was
    already logged by AuthFlows.
    """
    if isinstance(exc, ValidationError):
        return _errors(422, exc.messages)
    if isinstance(exc, TokenError):
        return _errors(401, [TokenError.PUBLIC_MESSAGE])
    return _errors(401, exc.messages)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one readable line per failed body/query field."""
    messages = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query"))
        messages.append(f"{field} {err.get('msg', 'is invalid')}".strip())
    return _errors(422, messages or ["Request validation failed."])


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _errors(exc.status_code, [str(exc.detail)])


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _errors(500, ["An unexpected error occurred."])


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database round-trip check."""
    database = "ok" if request.app.state.store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
