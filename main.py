#!/usr/bin/env python3
"""
SessionGuard -- operator command line.

Usage:
  python main.py sweep-sessions
  python main.py create-user admin@example.com --role admin
  python main.py create-user someone@example.com --full-name "Some One"
  python main.py serve --host 0.0.0.0 --port 8000

Environment variables (see core/config.py):
  ACCESS_SECRET, REFRESH_SECRET   Required. Distinct, at least 32 characters each.
  DATABASE_URL                    SQLAlchemy URL of the auth database.

create-user prompts for the password (twice) unless --password-stdin is given,
in which case the first line of stdin is used.
"""

import argparse
import getpass
import logging
import sys

from pydantic import ValidationError

from auth.errors import DuplicateEmailError
from auth.service import build_auth_service
from auth.store import UserStore, open_engine
from core.config import get_settings

logger = logging.getLogger("sessionguard.cli")

_MIN_PASSWORD_LENGTH = 6


def _read_password(from_stdin: bool) -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return ""
    return first


def cmd_sweep_sessions(args, settings) -> int:
    """Delete every session whose expiry has passed."""
    engine = open_engine(settings.database_url)
    try:
        service = build_auth_service(settings, engine)
        deleted = service.sessions.delete_expired()
    finally:
        engine.dispose()
    print(f"  Removed {deleted} expired session(s).")
    return 0


def cmd_create_user(args, settings) -> int:
    """Register a user and optionally promote it to another role."""
    password = _read_password(args.password_stdin)
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return 1

    engine = open_engine(settings.database_url)
    try:
        service = build_auth_service(settings, engine)
        try:
            user = service.register(args.email, password, args.full_name)
        except DuplicateEmailError:
            print(f"  [!] A user with email '{args.email}' already exists.")
            return 1
        if args.role != user.role:
            UserStore(engine).update(user.id, role=args.role)
    finally:
        engine.dispose()
    print(f"  Created user {user.id} ({args.email}, role={args.role}).")
    return 0


def cmd_serve(args, settings) -> int:
    """Run the HTTP API under uvicorn."""
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sessionguard",
        description="SessionGuard operator commands.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep-sessions", help="Delete expired sessions.")
    sweep.set_defaults(func=cmd_sweep_sessions)

    create = sub.add_parser("create-user", help="Register a new user.")
    create.add_argument("email", help="Login email (stored exactly as given).")
    create.add_argument("--role", default="user", choices=["user", "admin"], help="Role to assign (default: user).")
    create.add_argument("--full-name", default=None, help="Optional display name.")
    create.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting.",
    )
    create.set_defaults(func=cmd_create_user)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development).")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"  [!] Invalid configuration: {exc}")
        return 2
    return args.func(args, settings)


if __name__ == "__main__":
    sys.exit(main())
