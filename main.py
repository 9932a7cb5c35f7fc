#!/usr/bin/env python3
"""
authcore -- command-line access to the authentication engine.

Usage:
  python main.py register alice
  python main.py login alice --password s3cret
  python main.py verify eyJhbGciOi...

Environment variables (or .env):
  SECRET        Token signing key, at least 32 characters. Required.
  STORAGE_TYPE  memory | mongo | postgres (default: memory)
  DB_URI        Connection URI; required unless STORAGE_TYPE=memory.

With STORAGE_TYPE=memory nothing survives the process, so register and
login only make sense together against a real database.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.engine import AuthEngine, create_auth
from auth.errors import AuthError
from core.config import get_settings


def _password(args: argparse.Namespace) -> str:
    if args.password is not None:
        return args.password
    return getpass.getpass("Password: ")


def _cmd_register(engine: AuthEngine, args: argparse.Namespace) -> None:
    engine.register(args.username, _password(args))
    print(f"  Registered {args.username}")


def _cmd_login(engine: AuthEngine, args: argparse.Namespace) -> None:
    print(engine.login(args.username, _password(args)))


def _cmd_verify(engine: AuthEngine, args: argparse.Namespace) -> None:
    claim = engine.verify(args.token)
    print(f"  subject:    {claim.subject}")
    print(f"  issued_at:  {claim.issued_at.isoformat()}")
    expires = claim.expires_at.isoformat() if claim.expires_at else "never"
    print(f"  expires_at: {expires}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authcore",
        description="Register users, log in and verify session tokens.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log engine activity to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    p_register = sub.add_parser("register", help="Create a user")
    p_register.add_argument("username")
    p_register.add_argument("--password", help="Password (prompted when omitted)")
    p_register.set_defaults(handler=_cmd_register)

    p_login = sub.add_parser("login", help="Log in and print a session token")
    p_login.add_argument("username")
    p_login.add_argument("--password", help="Password (prompted when omitted)")
    p_login.set_defaults(handler=_cmd_login)

    p_verify = sub.add_parser("verify", help="Verify a session token and print its claim")
    p_verify.add_argument("token")
    p_verify.set_defaults(handler=_cmd_verify)
    return parser


def main(argv: Optional[list[str]] = None, engine: Optional[AuthEngine] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)-5s %(name)s %(message)s",
    )

    owned = engine is None
    try:
        if engine is None:
            engine = create_auth(get_settings())
        args.handler(engine, args)
    except AuthError as e:
        print(f"  [!] {e.code}: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        # Configuration errors (pydantic ValidationError is a ValueError).
        print(f"  [!] {e}", file=sys.stderr)
        return 1
    finally:
        if owned and engine is not None:
            engine.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
