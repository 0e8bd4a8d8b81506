#!/usr/bin/env python3
"""
Session Auth -- operator command line.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 4000] [--reload]
  python main.py create-user --email a@x.com [--nickname Ada]
  python main.py purge-sessions

The service itself never sweeps expired sessions; it only ignores them when
they are read. purge-sessions is the housekeeping job that reclaims the rows
(cron it, or run it by hand).

Environment variables: see core/config.py. SECRET_KEY is required unless
DEBUG=true.
"""

import argparse
import getpass
import sys
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from api.models import NicknameUpdate, RegisterRequest
from auth.models import Principal
from auth.passwords import CredentialHasher
from auth.store import SessionStore, UserStore
from core.config import get_settings


def _read_password(provided: Optional[str]) -> str:
    """Use --password if given, otherwise prompt twice without echo."""
    if provided is not None:
        return provided
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return first


def _report(exc: ValidationError) -> None:
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()))
        print(f"  [!] {field}: {err.get('msg', 'invalid')}")


def cmd_create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = _read_password(args.password)
    # Same rules as POST /api/v1/auth/register, so the account can log in.
    try:
        body = RegisterRequest(email=args.email, password=password)
        nickname = NicknameUpdate(nickname=args.nickname or "").nickname
    except ValidationError as exc:
        _report(exc)
        return 1
    email = body.email

    hasher = CredentialHasher.from_settings(settings)
    store = UserStore(db_url=settings.database_url)
    try:
        principal_id = store.create(
            Principal(email=email, password_hash=hasher.hash(password), nickname=nickname)
        )
    except IntegrityError:
        print(f"  [!] A principal with email {email} already exists.")
        return 1
    finally:
        store.close()

    print(f"  Created principal {principal_id} ({email}).")
    return 0


def cmd_purge_sessions(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = SessionStore(db_url=settings.database_url)
    try:
        removed = store.purge_expired()
    finally:
        store.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="session-auth",
        description="Operate the session auth service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --port 4000
  python main.py create-user --email ada@example.com --nickname Ada
  python main.py purge-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=4000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=cmd_serve)

    create = sub.add_parser("create-user", help="Create a local email/password principal")
    create.add_argument("--email", required=True)
    create.add_argument("--password", help="Password (prompted if omitted; avoid on shared shells)")
    create.add_argument("--nickname", default="")
    create.set_defaults(func=cmd_create_user)

    purge = sub.add_parser("purge-sessions", help="Delete expired session rows")
    purge.set_defaults(func=cmd_purge_sessions)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
