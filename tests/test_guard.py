"""Unit tests for auth/guard.py -- SessionGuard.resolve() / authorize().

Every branch of the resolution order is exercised against a real TokenStore
so the tests prove revocation and expiry are enforced server-side, not just
by the token's own exp claim.
"""

from datetime import timedelta

import pytest

import auth.guard
from auth.guard import Authenticated, Forbidden, SessionGuard, Unauthenticated
from auth.models import AccountStatus, Capability, RoleName, TokenClaims
from auth.session import SessionService
from core.db import utcnow


def _login(sessions: SessionService, email: str, password: str) -> str:
    return sessions.login(email, password).token


class TestResolve:
    def test_no_cookie(self, guard: SessionGuard):
        result = guard.resolve(None)
        assert result == Unauthenticated("no_cookie")
        assert result.clear_cookie is False

    def test_garbage_token(self, guard: SessionGuard):
        result = guard.resolve("definitely-not-a-jwt")
        assert result == Unauthenticated("invalid_token")
        assert result.clear_cookie is True

    def test_valid_session(self, guard: SessionGuard, sessions: SessionService, account_ids):
        result = guard.resolve(_login(sessions, "user@test.com", "userpass123"))
        assert isinstance(result, Authenticated)
        assert result.principal.account_id == account_ids["user"]
        assert result.principal.email == "user@test.com"
        assert result.principal.role == RoleName.user

    def test_revoked_token_rejected_despite_valid_signature(self, guard: SessionGuard, sessions: SessionService):
        token = _login(sessions, "user@test.com", "userpass123")
        sessions.logout(token)
        assert sessions.codec.verify(token) is not None
        assert guard.resolve(token) == Unauthenticated("revoked")

    def test_signed_but_never_recorded(self, guard: SessionGuard, sessions: SessionService, account_ids):
        token = sessions.codec.issue(
            TokenClaims(account_id=account_ids["admin"], role=RoleName.admin, status=AccountStatus.active)
        )
        assert guard.resolve(token) == Unauthenticated("revoked")

    def test_expired_record_is_deleted(self, guard: SessionGuard, sessions: SessionService, monkeypatch):
        token = _login(sessions, "user@test.com", "userpass123")
        monkeypatch.setattr(auth.guard, "utcnow", lambda: utcnow() + timedelta(hours=9))

        assert guard.resolve(token) == Unauthenticated("session_expired")
        assert sessions.tokens.find_by_token(token) is None
        assert guard.resolve(token) == Unauthenticated("revoked")

    def test_record_owner_must_match_claims(self, guard: SessionGuard, sessions: SessionService, account_ids):
        token = sessions.codec.issue(
            TokenClaims(account_id=account_ids["admin"], role=RoleName.admin, status=AccountStatus.active)
        )
        sessions.tokens.put(token, account_ids["user"], None, None, expires_at=utcnow() + timedelta(hours=1))
        assert guard.resolve(token) == Unauthenticated("account_mismatch")

    def test_deactivation_takes_effect_immediately(self, guard: SessionGuard, sessions: SessionService, account_ids):
        token = _login(sessions, "user@test.com", "userpass123")
        sessions.accounts.update_account(account_ids["user"], status=AccountStatus.inactive)
        assert guard.resolve(token) == Unauthenticated("inactive")

    def test_principal_uses_current_role(self, guard: SessionGuard, sessions: SessionService, account_ids):
        """A role change applies to existing sessions; the role claim in the token is not trusted."""
        token = _login(sessions, "user@test.com", "userpass123")
        sessions.accounts.update_account(account_ids["user"], role_id=account_ids["role_admin"])
        result = guard.resolve(token)
        assert isinstance(result, Authenticated)
        assert result.principal.role == RoleName.admin


class TestAuthorize:
    @pytest.mark.parametrize(
        "email,password,capability,allowed",
        [
            ("admin@test.com", "adminpass123", Capability.view_security_logs, True),
            ("admin@test.com", "adminpass123", Capability.manage_accounts, True),
            ("user@test.com", "userpass123", Capability.view_dashboard, True),
            ("user@test.com", "userpass123", Capability.view_security_logs, False),
            ("user@test.com", "userpass123", Capability.manage_accounts, False),
        ],
    )
    def test_capabilities(self, guard: SessionGuard, sessions: SessionService, email, password, capability, allowed):
        result = guard.authorize(_login(sessions, email, password), capability)
        if allowed:
            assert isinstance(result, Authenticated)
        else:
            assert isinstance(result, Forbidden)
            assert result.capability == capability
            assert result.principal.email == email

    def test_unauthenticated_passes_through(self, guard: SessionGuard):
        assert guard.authorize(None, Capability.view_dashboard) == Unauthenticated("no_cookie")
