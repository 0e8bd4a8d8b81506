"""
api/main.py -- FastAPI application entry point for the session auth service.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- credentialed CORS for the browser client origin
  3. SessionMiddleware     -- authlib's OAuth state store (not the sid session)

Lifespan builds the object graph once and hands it to handlers through
app.state: stores -> hasher -> resolver -> session manager. Nothing in auth/
holds a module-level singleton.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse, SessionDebugResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_session_id, try_get_current_principal
from auth.identity import IdentityResolver
from auth.models import PublicPrincipal
from auth.oauth import build_oauth_registry
from auth.passwords import CredentialHasher
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore
from core.config import get_settings
from core.errors import AuthError, InternalFailure, ValidationError

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionauth.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores and services on startup; dispose engines on shutdown.

    Order matters: the resolver needs the hasher and user store, the session
    manager needs both stores.
    """
    settings = get_settings()
    logger.info("Session auth API starting up")
    app.state.user_store = UserStore(db_url=settings.database_url)
    app.state.session_store = SessionStore(db_url=settings.database_url)
    app.state.hasher = CredentialHasher.from_settings(settings)
    app.state.resolver = IdentityResolver(app.state.user_store, app.state.hasher)
    app.state.session_manager = SessionManager(
        app.state.session_store,
        app.state.user_store,
        max_age_seconds=settings.session_max_age_seconds,
    )
    app.state.oauth = build_oauth_registry(settings)
    logger.info("Auth initialized (session lifetime=%ds)", settings.session_max_age_seconds)

    yield

    app.state.session_store.close()
    app.state.user_store.close()
    logger.info("Session auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Session Auth API",
    description="Local and OAuth login with server-side sessions and owner-only resources.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.client_origin],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

# authlib keeps the OAuth `state` value here between the authorization
# redirect and the callback. Separate cookie from sid.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="oauth_state",
    max_age=600,
    same_site="lax",
    https_only=_settings.secure_cookies,
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render the expected-failure taxonomy verbatim."""
    if isinstance(exc, InternalFailure):
        logger.error(
            "Internal failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.log_detail,
            exc_info=exc.__cause__ or exc,
        )
    response = JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})
    if request.url.path.startswith("/api/v1/auth/"):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 validation-error. Only field locations and messages are echoed, never input values."""
    fields = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in exc.errors()
    )
    error = ValidationError(detail=fields or None)
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
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
    """Catch-all for unexpected server errors (store down, bugs).

    The raw exception goes to the server log only; the client receives the
    generic internal-error envelope.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": InternalFailure().to_dict()})


# ---------------------------------------------------------------------------
# Health and diagnostics
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability. No auth required."""
    try:
        request.app.state.user_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=__version__,
        components={"app": "ok", "database": database},
    )


@app.get("/debug/session", include_in_schema=False)
def debug_session(
    request: Request,
    principal: PublicPrincipal | None = Depends(try_get_current_principal),
) -> SessionDebugResponse:
    """Bump and report the diagnostic view counter. DEBUG mode only."""
    if not get_settings().debug:
        raise HTTPException(status_code=404, detail="Not Found")
    manager: SessionManager = request.app.state.session_manager
    views = manager.increment(get_session_id(request), "views") if principal is not None else None
    if views is None:
        return SessionDebugResponse(message="No session", views=0, userId=None)
    return SessionDebugResponse(message="Session alive", views=views, userId=principal.id)
