"""
auth/cookies.py -- Transport helpers for the signed `sid` session cookie.

The cookie value is the server-side session id signed with SECRET_KEY via
itsdangerous. A tampered or foreign value fails signature checks and reads as
"no session" before the store is ever queried.

Cookie attributes:
  httponly=True     JS cannot read the cookie (XSS mitigation).
  samesite="lax"    sent on top-level navigations, not on cross-site POSTs.
  secure            SECURE_COOKIES=true whenever served over TLS.
  max_age           matches the absolute session lifetime.
"""

from __future__ import annotations

from itsdangerous import BadData, URLSafeTimedSerializer

from core.config import Settings, get_settings

_SALT = "sessionauth.sid.v1"


def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=settings.secret_key, salt=_SALT)


def sign_session_id(session_id: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return _serializer(settings).dumps(session_id)


def read_session_id(cookie_value: str | None, settings: Settings | None = None) -> str | None:
    """Return the session id carried by a cookie value, or None if absent or tampered."""
    if not cookie_value:
        return None
    settings = settings or get_settings()
    try:
        session_id = _serializer(settings).loads(cookie_value, max_age=settings.session_max_age_seconds)
    except BadData:
        return None
    return session_id if isinstance(session_id, str) and session_id else None


def set_session_cookie(response, session_id: str, settings: Settings | None = None) -> None:
    """Attach the signed session id to a FastAPI/Starlette response."""
    settings = settings or get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=sign_session_id(session_id, settings),
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_max_age_seconds,
    )


def clear_session_cookie(response, settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )
