"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, minimal logic). Stores and the
resolver/session manager do the work; these classes own domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

LOCAL_PROVIDER = "local"
NICKNAME_MAX_LENGTH = 50


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup (trimmed, lowercased)."""
    return email.strip().lower()


class FailureReason(str, Enum):
    INVALID_CREDENTIALS = "invalid-credentials"
    EMAIL_TAKEN = "email-taken"
    NO_EMAIL_FROM_PROVIDER = "no-email-from-provider"


@dataclass
class Principal:
    """Represents an identity record.

    password_hash is None for OAuth-only principals. Such a principal can never
    authenticate through the local credential path.

    provider defaults to "local". Linking an OAuth identity by email overwrites
    provider/provider_subject in place but leaves password_hash untouched, so a
    linked account keeps working with its password.
    """

    email: str
    id: int | None = None
    password_hash: str | None = None
    provider: str = LOCAL_PROVIDER
    provider_subject: str | None = None
    nickname: str = ""
    created_at: str | None = None
    updated_at: str | None = None

    def public(self) -> PublicPrincipal:
        return PublicPrincipal(id=self.id, email=self.email, nickname=self.nickname)


@dataclass(frozen=True)
class PublicPrincipal:
    """The projection handed to callers and attached to a request. Never carries the hash."""

    id: int
    email: str
    nickname: str = ""


@dataclass
class SessionRecord:
    """Server-side session row.

    data holds small auxiliary values (e.g. the diagnostic "views" counter).
    expires_at is absolute: created_at + max age, never extended.
    """

    id: str
    principal_id: int
    created_at: datetime
    expires_at: datetime
    data: dict = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
