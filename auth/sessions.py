"""
auth/sessions.py -- Session lifecycle: establish, restore, terminate.

State machine per session id: absent -> active -> (expired | terminated).

Policy decisions:
  Expiry is absolute. expires_at = created_at + max_age and is never pushed
  forward by activity. Expiry is evaluated lazily in restore(); there is no
  background sweep. An expired row found during restore is deleted on the
  spot, everything else waits for `main.py purge-sessions`.

  Store failures:
    establish / terminate -> InternalFailure (the caller gets a 500).
    restore               -> logged, treated as absent. A transient store blip
                             degrades every request to "logged out" instead of
                             failing it.

  Session ids are 256-bit values from secrets.token_urlsafe(). A colliding
  insert is rejected by the store's primary key and retried with a fresh id;
  an existing session is never overwritten.

Raw session ids are never logged; _tag() gives an 8-char prefix for tracing.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import PublicPrincipal, SessionRecord
from auth.store import SessionStore, UserStore
from core.errors import InternalFailure

logger = logging.getLogger("sessionauth.auth.sessions")

_ID_BYTES = 32
_MAX_ID_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _tag(session_id: str) -> str:
    return session_id[:8]


class SessionManager:
    """Owns every Session entity. Nothing else writes to the session store."""

    def __init__(
        self,
        session_store: SessionStore,
        user_store: UserStore,
        max_age_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sessions = session_store
        self._users = user_store
        self.max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock

    def establish(self, principal: PublicPrincipal) -> SessionRecord:
        """Create a fresh session for principal. Call only after resolver success."""
        for _ in range(_MAX_ID_ATTEMPTS):
            now = self._clock()
            record = SessionRecord(
                id=secrets.token_urlsafe(_ID_BYTES),
                principal_id=principal.id,
                created_at=now,
                expires_at=now + self.max_age,
            )
            try:
                self._sessions.put(record)
            except IntegrityError:
                logger.warning("Session id collision; regenerating")
                continue
            except SQLAlchemyError as exc:
                raise InternalFailure("session store unavailable during establish") from exc
            logger.info("Session %s established for principal id=%s", _tag(record.id), principal.id)
            return record
        raise InternalFailure("could not allocate a unique session id")

    def restore(self, session_id: str | None) -> PublicPrincipal | None:
        """Return the principal bound to session_id, or None for any not-logged-in state.

        Never raises. Unknown id, expired session, deleted principal, a corrupt
        session row and store failure all come back as None.
        """
        if not session_id:
            return None
        try:
            record = self._active_record(session_id)
            if record is None:
                return None
            principal = self._users.get_by_id(record.principal_id)
        except SQLAlchemyError:
            logger.warning("Session store unavailable during restore; treating request as anonymous", exc_info=True)
            return None
        except ValueError:
            logger.warning("Session %s has an unreadable payload; treating request as anonymous", _tag(session_id))
            return None
        if principal is None:
            logger.info("Session %s references a deleted principal", _tag(session_id))
            return None
        return principal.public()

    def terminate(self, session_id: str | None) -> None:
        """Delete the session. Idempotent: an absent session is not an error."""
        if not session_id:
            return
        try:
            deleted = self._sessions.delete(session_id)
        except SQLAlchemyError as exc:
            raise InternalFailure("session store unavailable during terminate") from exc
        if deleted:
            logger.info("Session %s terminated", _tag(session_id))

    def increment(self, session_id: str | None, key: str) -> int | None:
        """Bump an auxiliary counter in an active session's payload.

        Returns the new value, or None when there is no active session.
        Diagnostic use only.
        """
        if not session_id:
            return None
        record = self._active_record(session_id)
        if record is None:
            return None
        value = int(record.data.get(key, 0)) + 1
        record.data[key] = value
        self._sessions.update_data(session_id, record.data)
        return value

    def _active_record(self, session_id: str) -> SessionRecord | None:
        record = self._sessions.get(session_id)
        if record is None:
            return None
        if record.is_expired(self._clock()):
            self._sessions.delete(session_id)
            logger.info("Session %s expired", _tag(session_id))
            return None
        return record
