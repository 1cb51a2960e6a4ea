"""Unit tests for auth/session.py -- SessionService login/logout.

Covers:
- successful login persists a token record, stamps last_login_at and
  returns a principal built from the stored account
- failure classes: missing_fields, invalid_email, bad_credentials,
  account_inactive -- and that no token is issued for any of them
- unknown email and wrong password are indistinguishable to the caller
- inactive accounts are only reported after the password matched
- logout revokes exactly the presented token and never raises
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import RoleName
from auth.session import LoginFailed, LoginSucceeded, SessionService


class TestLoginSuccess:
    def test_login_issues_recorded_token(self, sessions: SessionService, account_ids):
        result = sessions.login("admin@test.com", "adminpass123", device_info="pytest", ip_address="10.1.1.1")
        assert isinstance(result, LoginSucceeded)
        assert result.principal.account_id == account_ids["admin"]
        assert result.principal.role == RoleName.admin

        record = sessions.tokens.find_by_token(result.token)
        assert record is not None
        assert record.account_id == account_ids["admin"]
        assert record.device_info == "pytest"
        assert record.ip_address == "10.1.1.1"

    def test_record_lives_for_session_max_age(self, sessions: SessionService):
        before = datetime.now(timezone.utc)
        result = sessions.login("user@test.com", "userpass123")
        after = datetime.now(timezone.utc)
        record = sessions.tokens.find_by_token(result.token)
        assert before + timedelta(hours=8) <= record.expires_at <= after + timedelta(hours=8)

    def test_last_login_stamped(self, sessions: SessionService, account_ids):
        assert sessions.accounts.get_by_id(account_ids["user"]).last_login_at is None
        result = sessions.login("user@test.com", "userpass123")
        assert result.account.last_login_at is not None
        assert sessions.accounts.get_by_id(account_ids["user"]).last_login_at == result.account.last_login_at

    def test_email_is_normalized(self, sessions: SessionService, account_ids):
        result = sessions.login("  USER@Test.com ", "userpass123")
        assert isinstance(result, LoginSucceeded)
        assert result.principal.email == "user@test.com"

    def test_each_login_is_a_separate_session(self, sessions: SessionService, account_ids):
        first = sessions.login("admin@test.com", "adminpass123", device_info="laptop")
        second = sessions.login("admin@test.com", "adminpass123", device_info="phone")
        assert first.token != second.token
        devices = {r.device_info for r in sessions.tokens.list_for_account(account_ids["admin"])}
        assert devices == {"laptop", "phone"}


class TestLoginFailure:
    @pytest.mark.parametrize(
        "email,password",
        [("", "userpass123"), ("user@test.com", ""), (None, None), ("   ", "userpass123"), (None, "userpass123")],
    )
    def test_missing_fields(self, sessions: SessionService, email, password):
        result = sessions.login(email, password)
        assert isinstance(result, LoginFailed)
        assert (result.code, result.status_code) == ("missing_fields", 400)

    @pytest.mark.parametrize("email", ["not-an-email", "user@test", "user @test.com", "@test.com"])
    def test_invalid_email(self, sessions: SessionService, email):
        result = sessions.login(email, "userpass123")
        assert (result.code, result.status_code) == ("invalid_email", 400)

    def test_unknown_email_and_wrong_password_look_the_same(self, sessions: SessionService, account_ids):
        unknown = sessions.login("ghost@test.com", "userpass123")
        wrong = sessions.login("user@test.com", "not-the-password")
        assert (unknown.code, unknown.message, unknown.status_code) == ("bad_credentials", "Invalid credentials.", 401)
        assert (wrong.code, wrong.message, wrong.status_code) == (unknown.code, unknown.message, unknown.status_code)
        assert unknown.account_id is None
        assert wrong.account_id == account_ids["user"]

    def test_wrong_password_issues_no_token(self, sessions: SessionService, account_ids):
        sessions.login("user@test.com", "not-the-password")
        assert sessions.tokens.list_for_account(account_ids["user"]) == []
        assert sessions.accounts.get_by_id(account_ids["user"]).last_login_at is None

    def test_inactive_with_correct_password(self, sessions: SessionService, account_ids):
        result = sessions.login("inactive@test.com", "inactivepass123")
        assert (result.code, result.message, result.status_code) == ("account_inactive", "Account is not active.", 401)
        assert sessions.tokens.list_for_account(account_ids["inactive"]) == []

    def test_inactive_with_wrong_password_is_bad_credentials(self, sessions: SessionService):
        """Account status is never revealed to someone who does not know the password."""
        result = sessions.login("inactive@test.com", "guess")
        assert result.code == "bad_credentials"


class TestLogout:
    def test_logout_revokes_only_that_token(self, sessions: SessionService, account_ids):
        laptop = sessions.login("admin@test.com", "adminpass123", device_info="laptop")
        phone = sessions.login("admin@test.com", "adminpass123", device_info="phone")
        sessions.logout(laptop.token)
        assert sessions.tokens.find_by_token(laptop.token) is None
        assert sessions.tokens.find_by_token(phone.token) is not None

    def test_logout_twice_is_harmless(self, sessions: SessionService):
        result = sessions.login("user@test.com", "userpass123")
        sessions.logout(result.token)
        sessions.logout(result.token)
        assert sessions.tokens.find_by_token(result.token) is None

    @pytest.mark.parametrize("token", [None, "", "not-a-token"])
    def test_logout_without_session(self, sessions: SessionService, token):
        assert sessions.logout(token) is None
