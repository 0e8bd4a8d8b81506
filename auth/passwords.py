"""
auth/passwords.py -- One-way password hashing with argon2id.

Security design decisions:
  argon2id via argon2-cffi's PasswordHasher. Memory-hard, so GPU/ASIC attacks
       are expensive. The encoded digest embeds algorithm, version, cost
       parameters and a per-hash random salt -- no separate salt column.

  verify() never raises. A mismatch, a malformed digest, or any other
       verification problem returns False. Callers cannot tell the cases
       apart, which is the point.

  hash() failures (e.g. memory exhaustion) raise InternalFailure. There is no
       fallback to a weaker scheme.

  _dummy_hash enables timing equalization in the identity resolver: an
       unknown email still pays the full verification cost.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

from core.config import Settings
from core.errors import InternalFailure

logger = logging.getLogger("sessionauth.auth")


class CredentialHasher:
    """Hash and verify passwords with process-wide argon2id cost parameters.

    Usage:
        hasher = CredentialHasher.from_settings(get_settings())
        digest = hasher.hash("correct horse")
        hasher.verify(digest, "correct horse")   # True
    """

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4) -> None:
        self._ph = PasswordHasher(time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism)
        # Computed once so the first unknown-email login is not measurably
        # slower than the rest.
        self._dummy_hash = self.hash("sessionauth_timing_dummy")

    @classmethod
    def from_settings(cls, settings: Settings) -> CredentialHasher:
        return cls(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    def hash(self, plaintext: str) -> str:
        """Return an encoded argon2id digest of plaintext."""
        try:
            return self._ph.hash(plaintext)
        except HashingError as exc:
            logger.error("Password hashing failed: %s", exc)
            raise InternalFailure("password hashing failed") from exc

    def verify(self, digest: str | None, plaintext: str) -> bool:
        """Return True only if plaintext matches digest. Never raises."""
        if not digest:
            return False
        try:
            return self._ph.verify(digest, plaintext)
        except VerifyMismatchError:
            return False
        except InvalidHashError:
            logger.warning("Stored password digest is malformed; treating as mismatch")
            return False
        except VerificationError:
            return False

    def verify_dummy(self, plaintext: str) -> None:
        """Spend the same work as a real verification, for absent principals."""
        self.verify(self._dummy_hash, plaintext)

    def needs_rehash(self, digest: str) -> bool:
        """True when digest was produced with different cost parameters."""
        try:
            return self._ph.check_needs_rehash(digest)
        except (InvalidHashError, ValueError):
            return False
