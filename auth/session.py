"""
auth/session.py -- Login and logout orchestration.

SessionService ties the Credential Verifier, TokenCodec, TokenStore and
AccountStore together for the two state-changing entry points. It returns
result objects instead of raising for expected failures, so the HTTP layer
only has to map results onto responses and cookies.

Login failure classes:
    missing_fields    400  email or password absent/blank
    invalid_email     400  email fails the syntax check after normalization
    bad_credentials   401  unknown email OR wrong password (never says which)
    account_inactive  401  correct password, account not active

bcrypt always runs, even for an unknown email [C1]. The inactive case is only
reported after the password matched, so "account is not active" cannot be
used to probe which emails exist.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from auth.models import Account, Principal, TokenClaims
from auth.passwords import equalize_timing, verify_password
from auth.store import AccountStore, TokenStore, normalize_email
from auth.tokens import TokenCodec
from core.db import utcnow

logger = logging.getLogger("branchdesk.auth")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class LoginSucceeded:
    principal: Principal
    account: Account
    token: str


@dataclass(frozen=True)
class LoginFailed:
    code: str
    message: str
    status_code: int
    account_id: int | None = None


class SessionService:
    def __init__(
        self,
        accounts: AccountStore,
        tokens: TokenStore,
        codec: TokenCodec,
        session_max_age: int,
    ) -> None:
        self.accounts = accounts
        self.tokens = tokens
        self.codec = codec
        self.session_max_age = session_max_age

    def login(
        self,
        email: str | None,
        password: str | None,
        device_info: str | None = None,
        ip_address: str | None = None,
    ) -> LoginSucceeded | LoginFailed:
        """Verify credentials and open a new session.

        On success the token record is persisted and last_login_at is
        stamped. The caller is responsible for writing the cookie.
        """
        if not email or not email.strip() or not password:
            return LoginFailed("missing_fields", "Email and password are required.", 400)

        normalized = normalize_email(email)
        if not EMAIL_PATTERN.match(normalized):
            return LoginFailed("invalid_email", "Invalid email format.", 400)

        account = self.accounts.get_by_email(normalized)
        if account is None:
            equalize_timing(password)
            logger.info("Login failed: unknown account")
            return LoginFailed("bad_credentials", "Invalid credentials.", 401)

        if not verify_password(password, account.password_hash):
            logger.info("Login failed: bad password for account %s", account.id)
            return LoginFailed("bad_credentials", "Invalid credentials.", 401, account_id=account.id)

        if not account.is_active:
            logger.info("Login refused: account %s is %s", account.id, account.status.value)
            return LoginFailed("account_inactive", "Account is not active.", 401, account_id=account.id)

        principal = Principal(
            account_id=account.id,
            email=account.email,
            role=account.role.name,
            status=account.status,
        )
        token = self.codec.issue(
            TokenClaims(
                account_id=principal.account_id,
                role=principal.role,
                status=principal.status,
                email=principal.email,
            )
        )
        now = utcnow()
        self.tokens.put(
            token,
            account.id,
            device_info,
            ip_address,
            expires_at=now + timedelta(seconds=self.session_max_age),
        )
        self.accounts.update_last_login(account.id, now)
        refreshed = self.accounts.get_by_id(account.id) or account
        logger.info("Login succeeded for account %s", account.id)
        return LoginSucceeded(principal=principal, account=refreshed, token=token)

    def logout(self, token: str | None) -> None:
        """Revoke the session record for token, if any.

        Logout always succeeds from the caller's point of view: a store
        failure is logged and the transport still clears the cookie.
        """
        if not token:
            return
        try:
            revoked = self.tokens.delete_by_token(token)
        except SQLAlchemyError:
            logger.exception("Failed to revoke session record on logout")
            return
        if revoked:
            logger.info("Session revoked on logout")
