"""
auth/tokens.py -- Signed session tokens and the auth-token cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       account_id, role, status, email, iat, exp and a random jti. The jti
       makes every issued token unique even when the same account logs in
       twice within one second (the token column is UNIQUE in the store).

  verify() returns None on any failure -- bad structure, bad signature,
       expired, or missing account_id/role/status. Callers treat None as
       unauthenticated; nothing here raises for a bad token.

  The codec is stateless. Revocation lives in the TokenStore: a token that
       verifies here is still rejected by SessionGuard when its record is gone.

  Cookie: the token travels in the auth-token cookie (httpOnly, SameSite=lax,
       Path=/, Max-Age=8h). The cookie outlives neither the server-side record
       of a cookie login nor the exp claim.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import AccountStatus, RoleName, TokenClaims
from core.config import get_settings

logger = logging.getLogger("branchdesk.auth")

_ALGORITHM = "HS256"

SESSION_COOKIE = "auth-token"
DEFAULT_TOKEN_TTL = 7 * 24 * 3600


class TokenCodec:
    """Issues and verifies HS256 session tokens.

    Usage:
        codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)
        token = codec.issue(TokenClaims(account_id=1, role=RoleName.user, status=AccountStatus.active))
        claims = codec.verify(token)  # TokenClaims or None
    """

    def __init__(self, secret_key: str, expire_seconds: int = DEFAULT_TOKEN_TTL) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a signing key.")
        if expire_seconds <= 0:
            raise ValueError("Token lifetime must be positive.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, claims: TokenClaims, now: datetime | None = None) -> str:
        """Encode a signed token embedding the claims and an absolute expiry."""
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "account_id": claims.account_id,
            "role": claims.role.value,
            "status": claims.status.value,
            "email": claims.email,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.expire_seconds),
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims | None:
        """Decode and verify a token. Returns the claims or None on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            return None

        account_id = payload.get("account_id")
        if not isinstance(account_id, int) or isinstance(account_id, bool):
            return None
        if "role" not in payload or "status" not in payload:
            return None
        try:
            role = RoleName(payload["role"])
            status = AccountStatus(payload["status"])
        except ValueError:
            return None
        return TokenClaims(account_id=account_id, role=role, status=status, email=payload.get("email"))


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str) -> None:
    """Write the session token as the auth-token cookie.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: Settings.session_cookie_max_age (8 hours by default).
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_cookie_max_age,
        path="/",
    )


def clear_session_cookie(response) -> None:
    """Expire the auth-token cookie on the client."""
    response.delete_cookie(
        SESSION_COOKIE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=get_settings().secure_cookies,
    )
