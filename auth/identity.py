"""
auth/identity.py -- Resolve asserted credentials to a canonical principal.

Every entry point returns a (PublicPrincipal | None, FailureReason | None)
pair. Exactly one side is populated.

Security:
  [enumeration] resolve_local() returns INVALID_CREDENTIALS for an unknown
  email, a principal with no password hash, and a wrong password alike. The
  first two still run a full argon2 verification against a dummy digest so
  response time does not separate them from the third.

  [linking] resolve_oauth() links by email with no secondary proof. A local
  account becomes reachable by whoever controls that address at the provider.
  This is the accepted trust boundary of the design; the only mitigation is
  that oauth.py refuses emails the provider marks as unverified.

Concurrency:
  Lookup-then-create is not atomic on its own. The store's unique constraints
  make the losing writer fail with IntegrityError; the resolver then re-reads
  and returns whatever the winner wrote. No application-level lock.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import FailureReason, Principal, PublicPrincipal, normalize_email
from auth.passwords import CredentialHasher
from auth.store import UserStore
from core.errors import InternalFailure

logger = logging.getLogger("sessionauth.auth")

Resolution = tuple[PublicPrincipal | None, FailureReason | None]

# After a lost race the winner's row is visible on the next read.
_MAX_ATTEMPTS = 3


class IdentityResolver:
    def __init__(self, user_store: UserStore, hasher: CredentialHasher) -> None:
        self._users = user_store
        self._hasher = hasher

    # ------------------------------------------------------------------
    # Local credentials
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> Resolution:
        """Create a local principal. Fails with EMAIL_TAKEN on any existing record for email.

        A failed registration never mutates the existing principal.
        """
        email = normalize_email(email)
        if self._users.get_by_email(email) is not None:
            return None, FailureReason.EMAIL_TAKEN

        digest = self._hasher.hash(password)
        try:
            principal_id = self._users.create(Principal(email=email, password_hash=digest))
        except IntegrityError:
            # Concurrent registration of the same address won the insert.
            logger.info("Registration lost a uniqueness race; reporting email-taken")
            return None, FailureReason.EMAIL_TAKEN

        logger.info("Registered local principal id=%s", principal_id)
        return self._public(principal_id), None

    def resolve_local(self, email: str, password: str) -> Resolution:
        """Verify an email/password pair. Timing-equalized across all failure causes."""
        principal = self._users.get_by_email(normalize_email(email))
        if principal is None or principal.password_hash is None:
            # Do NOT return before paying the hashing cost.
            self._hasher.verify_dummy(password)
            return None, FailureReason.INVALID_CREDENTIALS

        if not self._hasher.verify(principal.password_hash, password):
            return None, FailureReason.INVALID_CREDENTIALS

        if self._hasher.needs_rehash(principal.password_hash):
            self._users.update_password_hash(principal.id, self._hasher.hash(password))
            logger.info("Upgraded password hash parameters for principal id=%s", principal.id)

        return principal.public(), None

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def resolve_oauth(self, provider: str, subject: str, email: str | None) -> Resolution:
        """Find, link, or create the principal for a provider assertion.

        Order:
          1. (provider, subject) already linked -> that principal.
          2. email matches an existing principal -> link in place, same id.
          3. otherwise -> new principal with no password hash.
        """
        if not email or not email.strip():
            return None, FailureReason.NO_EMAIL_FROM_PROVIDER
        email = normalize_email(email)

        for _ in range(_MAX_ATTEMPTS):
            linked = self._users.get_by_provider_subject(provider, subject)
            if linked is not None:
                return linked.public(), None

            existing = self._users.get_by_email(email)
            try:
                if existing is not None:
                    self._users.link_provider(existing.id, provider, subject)
                    logger.info("Linked %s identity to existing principal id=%s", provider, existing.id)
                    return self._public(existing.id), None

                principal_id = self._users.create(
                    Principal(email=email, provider=provider, provider_subject=subject)
                )
                logger.info("Created principal id=%s from %s identity", principal_id, provider)
                return self._public(principal_id), None
            except IntegrityError:
                logger.info("Concurrent %s resolution for the same identity; re-reading", provider)

        raise InternalFailure(f"could not resolve {provider} identity after {_MAX_ATTEMPTS} attempts")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _public(self, principal_id: int) -> PublicPrincipal:
        principal = self._users.get_by_id(principal_id)
        if principal is None:
            raise InternalFailure(f"principal {principal_id} vanished after write")
        return principal.public()
