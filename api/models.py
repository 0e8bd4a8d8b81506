"""
API request and response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Boundary validation lives here:
  - email: trimmed, lowercased, must look like local@domain.tld
  - password: 8-128 characters on registration, non-empty on login
    (never stripped -- whitespace is part of a password)
  - nickname: trimmed, at most 50 characters, empty string allowed
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import NICKNAME_MAX_LENGTH, PublicPrincipal, normalize_email

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _EmailBody(BaseModel):
    email: str = Field(max_length=320, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def normalize(cls, value: object) -> object:
        return normalize_email(value) if isinstance(value, str) else value


class RegisterRequest(_EmailBody):
    """Request body for POST /api/v1/auth/register."""

    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class LoginRequest(_EmailBody):
    """Request body for POST /api/v1/auth/login."""

    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class NicknameUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}/nickname.

    str_strip_whitespace runs before the length constraint, so "  Ada  " is
    stored as "Ada" and 50 visible characters plus padding is accepted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    nickname: str = Field(max_length=NICKNAME_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Public projection of a principal. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    nickname: str

    @classmethod
    def from_principal(cls, principal: PublicPrincipal) -> "PrincipalResponse":
        return cls(id=principal.id, email=principal.email, nickname=principal.nickname)


class NicknameResponse(BaseModel):
    nickname: str


class LogoutResponse(BaseModel):
    ok: bool = True


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


class SessionDebugResponse(BaseModel):
    message: str
    views: int
    userId: Optional[int] = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx JSON response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
