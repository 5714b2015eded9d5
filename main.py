#!/usr/bin/env python3
"""
Credgate -- Email-verified credentials from the command line.

Usage:
  python main.py verify user@example.org
  python main.py init-db
  python main.py sign-in user@example.org
  python main.py sign-out user@example.org
  python main.py -v verify user@example.org

Configuration comes from the environment or a .env file (see core/config.py):
  SECRET_KEY       Required unless DEBUG=true.
  DATABASE_URL     Defaults to sqlite:///credgate.db
  DOMAIN_BLACKLIST / DOMAIN_WHITELIST   JSON arrays; set at most one.
"""

import argparse
import getpass
import logging
import sys

from auth.authenticator import Authenticator
from auth.store import CredentialStore
from auth.tokens import JWTTokenIssuer
from core.config import Settings, get_settings
from core.errors import CredgateError
from db.rows import RowStore
from verify.verifier import EmailVerifier


def _build_authenticator(settings: Settings) -> tuple[Authenticator, RowStore]:
    rows = RowStore(db_url=settings.database_url)
    rows.create_tables()
    issuer = JWTTokenIssuer(rows, settings.secret_key, settings.token_expire_seconds)
    return Authenticator(CredentialStore(rows), EmailVerifier.from_settings(settings), issuer), rows


def cmd_verify(args: argparse.Namespace, settings: Settings) -> None:
    verdict = EmailVerifier.from_settings(settings).verify(args.email)
    print(f"  {args.email} is deliverable (accepted by {verdict.host}).")


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    rows = RowStore(db_url=settings.database_url)
    try:
        rows.create_tables()
    finally:
        rows.close()
    print(f"  Tables ready at {settings.database_url}.")


def cmd_sign_in(args: argparse.Namespace, settings: Settings) -> None:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        sys.exit(1)
    authenticator, rows = _build_authenticator(settings)
    try:
        credential_id = authenticator.sign_in(args.email, password)
    finally:
        rows.close()
    print(f"  Registered {args.email} (id {credential_id}).")


def cmd_sign_out(args: argparse.Namespace, settings: Settings) -> None:
    password = getpass.getpass("Password: ")
    authenticator, rows = _build_authenticator(settings)
    try:
        authenticator.sign_out(args.email, password)
    finally:
        rows.close()
    print(f"  Removed {args.email}.")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="credgate",
        description="Verify mailbox liveness and manage email credentials.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py verify user@example.org
  DOMAIN_BLACKLIST='["mailinator.com"]' python main.py verify user@mailinator.com
  DEBUG=true python main.py sign-in user@example.org
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every probe verdict (DEBUG level)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("verify", help="Check that an email address accepts mail")
    p.add_argument("email", metavar="EMAIL")
    p.set_defaults(func=cmd_verify)

    p = sub.add_parser("init-db", help="Create the database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("sign-in", help="Register a credential (prompts for the password)")
    p.add_argument("email", metavar="EMAIL")
    p.set_defaults(func=cmd_sign_in)

    p = sub.add_parser("sign-out", help="Delete a credential (prompts for the password)")
    p.add_argument("email", metavar="EMAIL")
    p.set_defaults(func=cmd_sign_out)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        args.func(args, get_settings())
    except CredgateError as exc:
        print(f"  [!] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
