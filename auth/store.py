"""
auth/store.py -- SQLAlchemy Core persistence layer for principals and sessions.

Pattern: Repository + Data Mapper.
UserStore and SessionStore are the repositories; _row_to_principal /
_row_to_session are the mappers. Resolver, session manager and route code
never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness is enforced by the database, not by application locks:
  - UNIQUE(email) makes concurrent registrations of one address collide.
  - UNIQUE(provider, provider_subject) makes concurrent OAuth callbacks for
    one subject collide. SQL treats NULLs as distinct, so any number of
    unlinked local principals (provider_subject NULL) can coexist.
  - sessions.id is the primary key; a colliding insert raises instead of
    overwriting another principal's session.
  Writers that lose a race receive sqlalchemy.exc.IntegrityError and are
  expected to re-read.

Timestamps are stored as UTC ISO 8601 strings with fixed microsecond width,
so lexical order matches chronological order.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import LOCAL_PROVIDER, Principal, SessionRecord, normalize_email

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_principals = Table(
    "principals",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for OAuth-only principals
    Column("provider", String(30), nullable=False, server_default=LOCAL_PROVIDER),
    Column("provider_subject", Text),  # provider's stable user ID
    Column("nickname", String(50), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("provider", "provider_subject", name="uq_principals_provider_subject"),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("principal_id", Integer, nullable=False),  # weak reference, no FK
    Column("data", Text, nullable=False, server_default="{}"),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def _to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Principal repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Principal entities.

    Usage:
        store = UserStore(get_settings().database_url)
        pid = store.create(Principal(email="a@x.com", password_hash=digest))
        principal = store.get_by_email("A@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def create(self, principal: Principal) -> int:
        """Insert a new principal and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email, or the
        (provider, provider_subject) pair, already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _principals.insert().values(
                    email=normalize_email(principal.email),
                    password_hash=principal.password_hash,
                    provider=principal.provider,
                    provider_subject=principal.provider_subject,
                    nickname=principal.nickname,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, principal_id: int) -> Principal | None:
        with self.engine.connect() as conn:
            row = conn.execute(_principals.select().where(_principals.c.id == principal_id)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def get_by_email(self, email: str) -> Principal | None:
        """Look up a principal by normalized email. O(1) via the UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _principals.select().where(_principals.c.email == normalize_email(email))
            ).fetchone()
        return _row_to_principal(row) if row is not None else None

    def get_by_provider_subject(self, provider: str, subject: str) -> Principal | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _principals.select().where(
                    (_principals.c.provider == provider) & (_principals.c.provider_subject == subject)
                )
            ).fetchone()
        return _row_to_principal(row) if row is not None else None

    def link_provider(self, principal_id: int, provider: str, subject: str) -> bool:
        """Attach an OAuth identity to an existing principal in place.

        Raises IntegrityError if another principal already holds the pair.
        """
        return self._update(principal_id, provider=provider, provider_subject=subject)

    def update_nickname(self, principal_id: int, nickname: str) -> bool:
        return self._update(principal_id, nickname=nickname)

    def update_password_hash(self, principal_id: int, password_hash: str) -> bool:
        return self._update(principal_id, password_hash=password_hash)

    def delete(self, principal_id: int) -> bool:
        """Delete a principal. Sessions referencing it are left to fail restore."""
        with self.engine.connect() as conn:
            result = conn.execute(_principals.delete().where(_principals.c.id == principal_id))
            conn.commit()
        return result.rowcount > 0

    def _update(self, principal_id: int, **values) -> bool:
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_principals.update().where(_principals.c.id == principal_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for SessionRecord entities.

    Expiry is not enforced here; SessionManager decides what an expired row
    means. purge_expired() exists for external housekeeping only.
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def put(self, record: SessionRecord) -> None:
        """Insert a new session. Raises IntegrityError if the id is taken."""
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=record.id,
                    principal_id=record.principal_id,
                    data=json.dumps(record.data),
                    created_at=_to_iso(record.created_at),
                    expires_at=_to_iso(record.expires_at),
                )
            )
            conn.commit()

    def get(self, session_id: str) -> SessionRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def update_data(self, session_id: str, data: dict) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(data=json.dumps(data)))
            conn.commit()
        return result.rowcount > 0

    def delete(self, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete all sessions whose expires_at has passed. Returns rows removed."""
        cutoff = _to_iso(now or datetime.now(timezone.utc))
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        provider=row.provider,
        provider_subject=row.provider_subject,
        nickname=row.nickname,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        principal_id=row.principal_id,
        data=json.loads(row.data or "{}"),
        created_at=datetime.fromisoformat(row.created_at),
        expires_at=datetime.fromisoformat(row.expires_at),
    )
