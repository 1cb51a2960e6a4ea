#!/usr/bin/env python3
"""
BranchDesk admin CLI -- provisioning and maintenance for the auth database.

Usage:
  python main.py init-db
  python main.py create-role admin --system --description "Full access"
  python main.py create-account owner@example.com --role admin
  python main.py create-account clerk@example.com --role user --employee-id EMP-0042
  python main.py set-status clerk@example.com inactive
  python main.py purge-tokens

Environment variables (see core/config.py):
  DATABASE_URL   SQLAlchemy URL of the auth database.
  BCRYPT_ROUNDS  Password hashing cost factor (default 12).
  SECRET_KEY     Required unless DEBUG=true.

Passwords are read with getpass unless --password is given. Expired session
records are never swept in the background; run purge-tokens from cron if the
table needs trimming.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Account, AccountStatus, Role, RoleName
from auth.passwords import MAX_PASSWORD_BYTES, hash_password
from auth.store import AccountStore, TokenStore
from core.config import get_settings
from core.db import create_db_engine


def _read_password(provided: Optional[str]) -> Optional[str]:
    if provided:
        return provided
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Confirm password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def cmd_init_db(accounts: AccountStore, tokens: TokenStore, args: argparse.Namespace) -> int:
    # Constructing the stores already created the tables.
    print("  Database ready.")
    return 0


def cmd_create_role(accounts: AccountStore, tokens: TokenStore, args: argparse.Namespace) -> int:
    try:
        role_id = accounts.create_role(
            Role(name=RoleName(args.name), description=args.description, is_system_role=args.system)
        )
    except IntegrityError:
        print(f"  [!] Role '{args.name}' already exists.")
        return 1
    print(f"  Created role '{args.name}' (id={role_id}).")
    return 0


def cmd_create_account(accounts: AccountStore, tokens: TokenStore, args: argparse.Namespace) -> int:
    role = accounts.get_role_by_name(args.role)
    if role is None:
        print(f"  [!] Role '{args.role}' does not exist. Create it first with create-role.")
        return 1
    password = _read_password(args.password)
    if not password:
        print("  [!] A password is required.")
        return 1
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return 1
    try:
        account_id = accounts.create_account(
            Account(
                email=args.email,
                password_hash=hash_password(password),
                role_id=role.id,
                employee_id=args.employee_id,
            )
        )
    except IntegrityError:
        print(f"  [!] An account for '{args.email}' already exists.")
        return 1
    print(f"  Created account {account_id} for {args.email.strip().lower()} ({role.name.value}).")
    return 0


def cmd_set_status(accounts: AccountStore, tokens: TokenStore, args: argparse.Namespace) -> int:
    account = accounts.get_by_email(args.email)
    if account is None:
        print(f"  [!] No account for '{args.email}'.")
        return 1
    status = AccountStatus(args.status)
    accounts.update_account(account.id, status=status)
    revoked = 0
    if status != AccountStatus.active:
        revoked = tokens.delete_for_account(account.id)
    print(f"  Account {account.id} is now {status.value}; {revoked} session(s) revoked.")
    return 0


def cmd_purge_tokens(accounts: AccountStore, tokens: TokenStore, args: argparse.Namespace) -> int:
    removed = tokens.delete_expired()
    print(f"  Removed {removed} expired session record(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="branchdesk", description="BranchDesk auth administration")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="create the auth tables")
    p.set_defaults(handler=cmd_init_db)

    p = sub.add_parser("create-role", help="create a role")
    p.add_argument("name", choices=[r.value for r in RoleName])
    p.add_argument("--description")
    p.add_argument("--system", action="store_true", help="mark as a non-deletable system role")
    p.set_defaults(handler=cmd_create_role)

    p = sub.add_parser("create-account", help="provision a login account")
    p.add_argument("email")
    p.add_argument("--role", required=True, choices=[r.value for r in RoleName])
    p.add_argument("--password", help="omit to be prompted")
    p.add_argument("--employee-id", dest="employee_id")
    p.set_defaults(handler=cmd_create_account)

    p = sub.add_parser("set-status", help="activate or deactivate an account")
    p.add_argument("email")
    p.add_argument("status", choices=[s.value for s in AccountStatus])
    p.set_defaults(handler=cmd_set_status)

    p = sub.add_parser("purge-tokens", help="delete expired session records")
    p.set_defaults(handler=cmd_purge_tokens)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    engine = create_db_engine(get_settings().database_url)
    try:
        accounts = AccountStore(engine)
        tokens = TokenStore(engine)
        return args.handler(accounts, tokens, args)
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
