"""
core/errors.py -- Error taxonomy for the auth service.

Every expected failure is an AuthError subclass carrying a stable code, a
client-safe message, and the HTTP status the transport layer should use.
api/main.py renders all of them through one exception handler into the
{"error": {"code", "message"}} envelope.

InternalFailure is the only class whose cause is logged server-side; its
message never carries internal detail.

Enumeration resistance: InvalidCredentials has exactly one message. Callers
must not subclass it or vary the message by cause.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for expected, locally handled failures."""

    code: str = "error"
    message: str = "Request failed."
    status_code: int = 400

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        super().__init__(message or self.message)
        if message is not None:
            self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body: dict = {"code": self.code, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ValidationError(AuthError):
    code = "validation-error"
    message = "Invalid input."
    status_code = 400


class InvalidCredentials(AuthError):
    # One message for unknown email, missing hash, and wrong password.
    code = "invalid-credentials"
    message = "Invalid email or password."
    status_code = 401

    def __init__(self) -> None:
        super().__init__()


class EmailTaken(AuthError):
    code = "email-taken"
    message = "Email already registered."
    status_code = 409


class Unauthorized(AuthError):
    code = "unauthorized"
    message = "Authentication required."
    status_code = 401


class Forbidden(AuthError):
    code = "forbidden"
    message = "You do not have access to this resource."
    status_code = 403


class ProviderAssertionInvalid(AuthError):
    code = "no-email-from-provider"
    message = "The identity provider did not supply a usable email address."
    status_code = 400


class InternalFailure(AuthError):
    code = "internal-error"
    message = "An unexpected error occurred."
    status_code = 500

    def __init__(self, detail: str | None = None) -> None:
        # detail is for server logs only; to_dict() never includes it.
        super().__init__()
        self.log_detail = detail

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}
