"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The restored principal is handed to route handlers as an explicit argument.
Nothing is attached to the request object.

try_get_current_principal() is the soft variant (returns None when not logged in).
get_current_principal() wraps it and raises Unauthorized.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.cookies import read_session_id
from auth.guard import require_authenticated
from auth.models import PublicPrincipal
from auth.sessions import SessionManager
from core.config import get_settings


def get_session_id(request: Request) -> str | None:
    """Return the verified session id from the sid cookie, or None."""
    settings = get_settings()
    return read_session_id(request.cookies.get(settings.session_cookie_name), settings)


def try_get_current_principal(request: Request) -> PublicPrincipal | None:
    """Restore the session carried by the request. Never raises."""
    manager: SessionManager = request.app.state.session_manager
    return manager.restore(get_session_id(request))


def get_current_principal(request: Request) -> PublicPrincipal:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: PublicPrincipal = Depends(get_current_principal)): ...
    """
    return require_authenticated(try_get_current_principal(request))
