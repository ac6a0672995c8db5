#!/usr/bin/env python3
"""
Gatekeeper admin CLI -- operator actions that are deliberately not exposed
over HTTP.

Usage:
  python main.py create-admin --email admin@example.com --name "Site Admin"
  python main.py create-admin --email admin@example.com --name "Site Admin" --password 'S3cure!pass'
  python main.py set-role h1@gmail.com admin
  python main.py list-users
  python main.py list-users --json
  python main.py revoke-sessions h1@gmail.com
  python main.py purge-sessions

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the auth database (default: auth/gatekeeper.db)
  SECRET_KEY    Must match the API server's key; session hashes depend on it.
                Set DEBUG=true to run against a throwaway dev key.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from typing import Optional

from auth.directory import DirectoryService
from auth.errors import DirectoryError
from auth.hashing import PasswordHasher
from auth.models import Role
from auth.sessions import SessionManager
from auth.store import CredentialStore
from core.config import Settings, get_settings
from core.i18n import FALLBACK_LOCALE, Messages
from core.logs import configure_logging

logger = logging.getLogger("gatekeeper.cli")


def _build_directory(settings: Settings) -> DirectoryService:
    store = CredentialStore(settings.database_url)
    sessions = SessionManager(
        settings.database_url,
        secret_key=settings.secret_key,
        default_ttl=settings.session_ttl_seconds,
    )
    return DirectoryService(
        store,
        sessions,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        session_ttl=settings.session_ttl_seconds,
    )


def _report(exc: DirectoryError) -> None:
    """Print a directory error in English with any per-field messages."""
    messages = Messages(FALLBACK_LOCALE)
    print(f"  [!] {messages.get(exc.message_key)}")
    for field, keys in exc.details.items():
        for text in messages.get_many(keys):
            print(f"      {field}: {text}")


def _cmd_create_admin(directory: DirectoryService, args: argparse.Namespace) -> int:
    password: Optional[str] = args.password
    if not password:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            print("  [!] Passwords do not match.")
            return 1
    profile = directory.create_admin(args.name, args.email, password, args.plan)
    print(f"  Created admin {profile.email} (plan={profile.subscription_plan.value}).")
    return 0


def _cmd_set_role(directory: DirectoryService, args: argparse.Namespace) -> int:
    profile = directory.set_role(args.email, Role(args.role))
    print(f"  {profile.email} is now {profile.role.value}.")
    return 0


def _cmd_list_users(directory: DirectoryService, args: argparse.Namespace) -> int:
    users = directory.store.list_users()
    if args.json:
        print(
            json.dumps(
                [
                    {
                        "email": u.email,
                        "name": u.name,
                        "subscription_plan": u.subscription_plan.value,
                        "role": u.role.value,
                        "created_at": u.created_at,
                    }
                    for u in users
                ],
                indent=2,
            )
        )
        return 0
    if not users:
        print("  No users registered.")
        return 0
    for u in users:
        print(f"  {u.email:<40} {u.role.value:<6} {u.subscription_plan.value:<10} {u.name}")
    return 0


def _cmd_revoke_sessions(directory: DirectoryService, args: argparse.Namespace) -> int:
    revoked = directory.revoke_sessions(args.email)
    print(f"  Revoked {revoked} session(s) for {args.email}.")
    return 0


def _cmd_purge_sessions(directory: DirectoryService, args: argparse.Namespace) -> int:
    removed = directory.sessions.purge_expired()
    print(f"  Purged {removed} expired or revoked session(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Administer Gatekeeper users and sessions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email admin@example.com --name "Site Admin"
  python main.py set-role h1@gmail.com admin
  python main.py list-users --json
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-admin", help="Create an account with the admin role")
    p.add_argument("--email", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--password", help="Omit to be prompted (keeps it out of shell history)")
    p.add_argument("--plan", default=None, help="Subscription plan: Free (default), Pro, or Enterprise")
    p.set_defaults(handler=_cmd_create_admin)

    p = sub.add_parser("set-role", help="Grant or remove admin rights")
    p.add_argument("email")
    p.add_argument("role", choices=[r.value for r in Role])
    p.set_defaults(handler=_cmd_set_role)

    p = sub.add_parser("list-users", help="List every registered user")
    p.add_argument("--json", action="store_true", help="Output structured JSON")
    p.set_defaults(handler=_cmd_list_users)

    p = sub.add_parser("revoke-sessions", help="Log a user out everywhere")
    p.add_argument("email")
    p.set_defaults(handler=_cmd_revoke_sessions)

    p = sub.add_parser("purge-sessions", help="Delete expired and revoked session records")
    p.set_defaults(handler=_cmd_purge_sessions)

    return parser


def main(argv: Optional[list[str]] = None, settings: Optional[Settings] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 1

    configure_logging(logging.WARNING)
    directory = _build_directory(settings or get_settings())
    try:
        return args.handler(directory, args)
    except DirectoryError as exc:
        _report(exc)
        return 1
    finally:
        directory.sessions.close()
        directory.store.close()


if __name__ == "__main__":
    sys.exit(main())
