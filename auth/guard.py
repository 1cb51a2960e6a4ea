"""
auth/guard.py -- Per-request session resolution.

SessionGuard turns the raw auth-token cookie value into one of three results:

    Authenticated(principal)   -- signed, unexpired, recorded, account active
    Unauthenticated(reason)    -- anything else; the caller must log in again
    Forbidden(principal, cap)  -- authenticated but the role lacks a capability

Resolution order (every request, no caching between requests):

    no cookie                          -> Unauthenticated("no_cookie")
    TokenCodec.verify() fails          -> Unauthenticated("invalid_token")
    no TokenStore record               -> Unauthenticated("revoked")
    record past its expires_at         -> delete record, Unauthenticated("session_expired")
    record owner != claims.account_id  -> Unauthenticated("account_mismatch")
    account status != active           -> Unauthenticated("inactive")
    otherwise                          -> Authenticated(principal)

The principal is built from the stored account (current role and status),
not from the claims, so a role change or deactivation takes effect on the
next request without waiting for the token to expire.

The guard never raises for a bad session and never decides how to respond.
The transport layer maps the result: HTML routes redirect to /login, JSON
routes answer 401/403. Every Unauthenticated result except "no_cookie" asks
the transport to clear the cookie.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.models import Capability, Principal
from auth.store import TokenStore
from auth.tokens import TokenCodec
from core.db import utcnow

logger = logging.getLogger("branchdesk.auth")


@dataclass(frozen=True)
class Authenticated:
    principal: Principal


@dataclass(frozen=True)
class Unauthenticated:
    reason: str

    @property
    def clear_cookie(self) -> bool:
        return self.reason != "no_cookie"


@dataclass(frozen=True)
class Forbidden:
    principal: Principal
    capability: Capability


SessionResult = Authenticated | Unauthenticated | Forbidden


class SessionGuard:
    """Resolves session cookies into principals.

    Usage:
        guard = SessionGuard(codec, token_store)
        result = guard.resolve(request.cookies.get(SESSION_COOKIE))
        if isinstance(result, Authenticated):
            ...
    """

    def __init__(self, codec: TokenCodec, tokens: TokenStore) -> None:
        self.codec = codec
        self.tokens = tokens

    def resolve(self, token: str | None) -> Authenticated | Unauthenticated:
        if not token:
            return Unauthenticated("no_cookie")

        claims = self.codec.verify(token)
        if claims is None:
            return Unauthenticated("invalid_token")

        record = self.tokens.find_by_token(token)
        if record is None or record.account is None:
            return Unauthenticated("revoked")

        if record.expires_at <= utcnow():
            self.tokens.delete_by_token(token)
            return Unauthenticated("session_expired")

        if record.account_id != claims.account_id:
            logger.warning(
                "Token record owner %s does not match claims account %s",
                record.account_id,
                claims.account_id,
            )
            return Unauthenticated("account_mismatch")

        account = record.account
        if not account.is_active:
            return Unauthenticated("inactive")

        return Authenticated(
            Principal(
                account_id=account.id,
                email=account.email,
                role=account.role.name,
                status=account.status,
            )
        )

    def authorize(self, token: str | None, capability: Capability) -> SessionResult:
        """Resolve the session and require that its role grants capability."""
        result = self.resolve(token)
        if isinstance(result, Authenticated) and not result.principal.can(capability):
            return Forbidden(result.principal, capability)
        return result
