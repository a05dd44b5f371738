# ABOUTME: CLI command for bootstrapping the database and managing API keys
# ABOUTME: Issues keys (printing the plaintext once), lists them, and changes their status

import argparse
import sys

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from apiplatform.config import get_settings
from apiplatform.database import ensure_sqlite_directory
from apiplatform.models.database import Base
from apiplatform.services.hashing import Sha256KeyHasher
from apiplatform.services.key_issuer import (
    InvalidExpiryError,
    InvalidStatusTransitionError,
    KeyNotFoundError,
    issue_key,
    list_keys,
    set_key_status,
)
from apiplatform.services.tiers import TIERS, InvalidTierError

CLI_ACTOR = "cli"


def _session_factory():
    settings = get_settings()
    engine = create_engine(settings.database_url)
    ensure_sqlite_directory(engine.url)
    return engine, sessionmaker(bind=engine)


def init_database() -> None:
    """Create all tables in the configured database."""
    engine, _ = _session_factory()
    try:
        Base.metadata.create_all(bind=engine)
        print(f"Database initialized: {engine.url.render_as_string(hide_password=True)}")
    finally:
        engine.dispose()


def issue_api_key(owner_id: str, name: str, tier: str, scopes: list[str], expires_in_days: float | None = None) -> str:
    """
    Issue a key and print it.

    Returns the plaintext key. Exits with status 1 for an unknown tier or an
    expiry that cannot be represented.
    """
    settings = get_settings()
    engine, Session = _session_factory()
    session = Session()
    try:
        issued = issue_key(
            session,
            owner_id=owner_id,
            name=name,
            scopes=scopes,
            tier=tier,
            expires_in_days=expires_in_days,
            actor=CLI_ACTOR,
            hasher=Sha256KeyHasher(),
            key_prefix=settings.key_prefix,
        )

        api_key = issued.api_key
        print(f"Issued API key {api_key.id} for {owner_id} ({api_key.tier} tier)")
        print(f"Scopes: {', '.join(api_key.scopes) or '(none)'}")
        if api_key.expires_at:
            print(f"Expires: {api_key.expires_at.isoformat()}")
        print(f"\n  {issued.plaintext}\n")
        print("Store this key now; it cannot be shown again.")
        return issued.plaintext
    except (InvalidTierError, InvalidExpiryError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        session.close()
        engine.dispose()


def list_api_keys(owner_id: str | None = None) -> None:
    engine, Session = _session_factory()
    session = Session()
    try:
        keys = list_keys(session, owner_id=owner_id)
        if not keys:
            print("No API keys found.")
            return
        for k in keys:
            scopes = ",".join(k.scopes or [])
            print(f"  {k.id}  {k.key_prefix}...  {k.owner_id}  {k.tier}  {k.status}  [{scopes}]  {k.name}")
    finally:
        session.close()
        engine.dispose()


def change_key_status(key_id: str, status: str) -> None:
    """Set a key's status, exiting with status 1 on unknown keys or forbidden transitions."""
    engine, Session = _session_factory()
    session = Session()
    try:
        api_key = set_key_status(session, key_id, status, actor=CLI_ACTOR)
        print(f"API key {api_key.id} is now {api_key.status}")
    except (KeyNotFoundError, InvalidStatusTransitionError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        session.close()
        engine.dispose()


def main(argv: list[str] | None = None):
    """CLI entry point for key management."""
    parser = argparse.ArgumentParser(description="Manage 209 Works API platform keys")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")

    issue = subparsers.add_parser("issue", help="Issue a new API key")
    issue.add_argument("--owner", required=True, help="Owner (user or employer) id")
    issue.add_argument("--name", required=True, help="Human readable key name")
    issue.add_argument("--tier", default="free", choices=sorted(TIERS), help="Rate limit tier")
    issue.add_argument("--scope", action="append", default=[], dest="scopes",
                       help="Scope to grant (repeatable), e.g. --scope jobs:read --scope admin")
    issue.add_argument("--expires-in-days", type=float, help="Expire the key after this many days")

    list_cmd = subparsers.add_parser("list", help="List API keys")
    list_cmd.add_argument("--owner", help="Only keys for this owner")

    for command, status in (("suspend", "suspended"), ("revoke", "revoked"), ("reactivate", "active")):
        sub = subparsers.add_parser(command, help=f"Mark a key as {status}")
        sub.add_argument("key_id")
        sub.set_defaults(status=status)

    args = parser.parse_args(argv)

    if args.command == "init-db":
        init_database()
    elif args.command == "issue":
        issue_api_key(args.owner, args.name, args.tier, args.scopes, args.expires_in_days)
    elif args.command == "list":
        list_api_keys(args.owner)
    else:
        change_key_status(args.key_id, args.status)


if __name__ == "__main__":
    main()
