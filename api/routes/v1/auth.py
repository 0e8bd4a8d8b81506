"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register                   -- create local principal; starts session
  POST /api/v1/auth/login                      -- password login; starts session
  GET  /api/v1/auth/me                         -- current principal or null
  POST /api/v1/auth/logout                     -- ends session; idempotent
  GET  /api/v1/auth/providers                  -- list enabled OAuth providers
  GET  /api/v1/auth/oauth/{provider}           -- redirect to provider consent page
  GET  /api/v1/auth/oauth/{provider}/callback  -- provider redirect target; starts session
  GET  /api/v1/auth/failure                    -- OAuth failure indicator

Security:
  [enumeration] login returns one InvalidCredentials shape for every cause.
  [fixation] any session presented with a successful login is terminated
      before the new one is issued.
  Cache-Control: no-store on responses that issue a session.
  register/login are plain `def` handlers so argon2 work runs in the
  threadpool and does not stall the event loop.
  The OAuth boundary is reached by browser navigation: every failure there
  is a redirect to the failure indicator, never a JSON error.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from httpx import HTTPError
from starlette.concurrency import run_in_threadpool

from api.models import (
    LoginRequest,
    LogoutResponse,
    OAuthProviderInfo,
    PrincipalResponse,
    RegisterRequest,
)
from auth.cookies import clear_session_cookie, set_session_cookie
from auth.dependencies import get_session_id, try_get_current_principal
from auth.identity import IdentityResolver
from auth.models import FailureReason, PublicPrincipal
from auth.oauth import ProviderFailure, get_enabled_providers, get_provider_assertion
from auth.sessions import SessionManager
from core.config import get_settings
from core.errors import EmailTaken, InvalidCredentials, ProviderAssertionInvalid

logger = logging.getLogger("sessionauth.api.auth")

# Auth policy:
# - POST /auth/register, /auth/login:   public
# - POST /auth/logout:                  public -- ending a session needs no prior auth
# - GET  /auth/me:                      public -- returns null when not logged in
# - GET  /auth/providers, oauth routes: public
router = APIRouter()

# Whitelist for ?reason= on /auth/failure. The raw query value is never echoed.
_FAILURE_MESSAGES: dict[str, str] = {
    "oauth_failed": "OAuth authentication failed.",
    "unknown_provider": "That sign-in provider is not available.",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _start_session(request: Request, response, principal: PublicPrincipal) -> None:
    """Replace whatever session the request carried with a fresh one for principal."""
    manager: SessionManager = request.app.state.session_manager
    manager.terminate(get_session_id(request))
    record = manager.establish(principal)
    set_session_cookie(response, record.id)
    response.headers["Cache-Control"] = "no-store"


def _failure_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(f"{get_settings().oauth_failure_path}?reason={reason}", status_code=302)


# ---------------------------------------------------------------------------
# Local credentials
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=PrincipalResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local principal and log it in.

    Fails with email-taken when any principal (local or OAuth) already owns
    the address. The existing record is not touched.
    """
    resolver: IdentityResolver = request.app.state.resolver
    principal, reason = resolver.register(body.email, body.password)
    if principal is None:
        logger.info("Registration rejected: %s", reason.value)
        raise EmailTaken()

    resp = JSONResponse(status_code=201, content=PrincipalResponse.from_principal(principal).model_dump())
    _start_session(request, resp, principal)
    return resp


@router.post("/auth/login", response_model=PrincipalResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; issue the sid cookie."""
    resolver: IdentityResolver = request.app.state.resolver
    principal, _reason = resolver.resolve_local(body.email, body.password)
    if principal is None:
        raise InvalidCredentials()

    resp = JSONResponse(status_code=200, content=PrincipalResponse.from_principal(principal).model_dump())
    _start_session(request, resp, principal)
    return resp


@router.get("/auth/me", response_model=PrincipalResponse | None)
def me(principal: PublicPrincipal | None = Depends(try_get_current_principal)) -> PrincipalResponse | None:
    """Return the current principal, or null. Never errors for anonymous callers."""
    if principal is None:
        return None
    return PrincipalResponse.from_principal(principal)


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request) -> JSONResponse:
    """Destroy the server-side session and clear the cookie."""
    manager: SessionManager = request.app.state.session_manager
    manager.terminate(get_session_id(request))
    resp = JSONResponse(content=LogoutResponse().model_dump())
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty list if none are set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(get_settings())]


@router.get("/auth/failure")
async def oauth_failure(request: Request) -> JSONResponse:
    """Failure indicator the OAuth callback redirects to."""
    reason = request.query_params.get("reason", "oauth_failed")
    if reason == FailureReason.NO_EMAIL_FROM_PROVIDER.value:
        error = ProviderAssertionInvalid()
        return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})
    code = reason if reason in _FAILURE_MESSAGES else "oauth_failed"
    return JSONResponse(status_code=401, content={"error": {"code": code, "message": _FAILURE_MESSAGES[code]}})


@router.get("/auth/oauth/{provider}")
async def oauth_redirect(request: Request, provider: str) -> RedirectResponse:
    """Redirect the browser to the provider's authorization page.

    The provider name is checked against the enabled list so a spoofed name
    can never select an unregistered client.
    """
    enabled = {p["name"] for p in get_enabled_providers(get_settings())}
    if provider not in enabled:
        return _failure_redirect("unknown_provider")

    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/oauth/{provider}/callback", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Exchange the authorization code, resolve the principal, start a session.

    Flow:
      1. Exchange code for token (authlib checks state against SessionMiddleware).
      2. Extract subject and verified email from the provider response.
      3. Resolve: linked subject -> link by email -> create.
      4. Issue the sid cookie and redirect to the client origin.
    """
    settings = get_settings()
    enabled = {p["name"] for p in get_enabled_providers(settings)}
    if provider not in enabled:
        return _failure_redirect("unknown_provider")

    client = request.app.state.oauth.create_client(provider)

    try:
        token = await client.authorize_access_token(request)
        assertion = await get_provider_assertion(client, provider, token)
    except (OAuthError, ProviderFailure, HTTPError):
        logger.warning("OAuth exchange failed for provider %r", provider, exc_info=True)
        return _failure_redirect("oauth_failed")

    resolver: IdentityResolver = request.app.state.resolver
    principal, reason = await run_in_threadpool(resolver.resolve_oauth, provider, assertion.subject, assertion.email)
    if principal is None:
        logger.info("OAuth login rejected for provider %r: %s", provider, reason.value)
        return _failure_redirect(reason.value)

    resp = RedirectResponse(settings.client_origin, status_code=302)
    await run_in_threadpool(_start_session, request, resp, principal)
    return resp
