"""Tests for the operator CLI (main.py): create-user and purge-sessions."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

import main
from auth.models import SessionRecord
from core.config import Settings


@pytest.fixture
def cli_settings(db_url):
    settings = Settings(
        debug=True,
        database_url=db_url,
        argon2_time_cost=1,
        argon2_memory_cost=1024,
        argon2_parallelism=1,
        _env_file=None,
    )
    with patch("main.get_settings", return_value=settings):
        yield settings


def test_create_user(cli_settings, user_store, hasher, capsys):
    rc = main.main(["create-user", "--email", " Ada@X.com ", "--password", "password1", "--nickname", "Ada"])
    assert rc == 0
    principal = user_store.get_by_email("ada@x.com")
    assert principal.nickname == "Ada"
    assert principal.provider == "local"
    assert hasher.verify(principal.password_hash, "password1")
    assert "Created principal" in capsys.readouterr().out


def test_create_user_duplicate(cli_settings, user_store):
    assert main.main(["create-user", "--email", "a@x.com", "--password", "password1"]) == 0
    assert main.main(["create-user", "--email", "a@x.com", "--password", "password2"]) == 1


@pytest.mark.parametrize("argv", [
    ["create-user", "--email", "not-an-email", "--password", "password1"],
    ["create-user", "--email", "ops@localhost", "--password", "password1"],
    ["create-user", "--email", "a@x.com", "--password", "short"],
    ["create-user", "--email", "a@x.com", "--password", "password1", "--nickname", "x" * 51],
])
def test_create_user_rejects_bad_input(cli_settings, user_store, argv):
    assert main.main(argv) == 1
    assert user_store.get_by_email("a@x.com") is None


def test_purge_sessions(cli_settings, session_store, capsys):
    now = datetime.now(timezone.utc)
    session_store.put(SessionRecord(id="old", principal_id=1, created_at=now - timedelta(hours=2),
                                    expires_at=now - timedelta(hours=1)))
    session_store.put(SessionRecord(id="live", principal_id=1, created_at=now,
                                    expires_at=now + timedelta(hours=1)))
    assert main.main(["purge-sessions"]) == 0
    assert session_store.get("old") is None
    assert session_store.get("live") is not None
    assert "Removed 1 expired session(s)." in capsys.readouterr().out


def test_created_user_can_log_in(cli_settings, client):
    assert main.main(["create-user", "--email", "ops@example.com", "--password", "password1"]) == 0
    resp = client.post("/api/v1/auth/login", json={"email": "ops@example.com", "password": "password1"})
    assert resp.status_code == 200
    assert resp.json()["email"] == "ops@example.com"


def test_rejected_email_is_reported(cli_settings, user_store, capsys):
    assert main.main(["create-user", "--email", "ops@localhost", "--password", "password1"]) == 1
    assert "[!] email" in capsys.readouterr().out
    assert user_store.get_by_email("ops@localhost") is None
