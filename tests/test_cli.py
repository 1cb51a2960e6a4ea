"""Tests for main.py -- the admin CLI.

Each test points the CLI at a throwaway SQLite file via a patched
get_settings() and inspects the database through the stores afterwards.
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest

import main
from auth.models import AccountStatus, RoleName
from auth.passwords import verify_password
from auth.store import AccountStore, TokenStore
from core.db import create_db_engine, utcnow


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(main, "get_settings", lambda: SimpleNamespace(database_url=url))
    return url


@pytest.fixture
def stores(db_url):
    engine = create_db_engine(db_url)
    yield AccountStore(engine), TokenStore(engine)
    engine.dispose()


def test_init_db(db_url, capsys):
    assert main.main(["init-db"]) == 0
    assert "Database ready." in capsys.readouterr().out


def test_create_role_and_account(db_url, stores):
    assert main.main(["create-role", "admin", "--system", "--description", "Full access"]) == 0
    assert main.main(["create-account", "Owner@Example.com", "--role", "admin", "--password", "longenough1"]) == 0

    accounts, _ = stores
    role = accounts.get_role_by_name(RoleName.admin)
    assert role.is_system_role is True
    owner = accounts.get_by_email("owner@example.com")
    assert owner.role.name == RoleName.admin
    assert verify_password("longenough1", owner.password_hash)


def test_duplicate_role_fails(db_url):
    assert main.main(["create-role", "user"]) == 0
    assert main.main(["create-role", "user"]) == 1


def test_account_needs_existing_role(db_url, capsys):
    assert main.main(["create-account", "a@example.com", "--role", "manager", "--password", "longenough1"]) == 1
    assert "does not exist" in capsys.readouterr().out


def test_short_password_rejected(db_url):
    main.main(["create-role", "user"])
    assert main.main(["create-account", "a@example.com", "--role", "user", "--password", "short"]) == 1


@pytest.mark.parametrize("password", ["x" * 80, "é" * 40])
def test_long_password_rejected(db_url, stores, capsys, password):
    main.main(["create-role", "user"])
    assert main.main(["create-account", "a@example.com", "--role", "user", "--password", password]) == 1
    assert "at most 72 bytes" in capsys.readouterr().out
    accounts, _ = stores
    assert accounts.get_by_email("a@example.com") is None


def test_password_at_byte_limit_accepted(db_url, stores):
    main.main(["create-role", "user"])
    assert main.main(["create-account", "a@example.com", "--role", "user", "--password", "y" * 72]) == 0
    accounts, _ = stores
    assert verify_password("y" * 72, accounts.get_by_email("a@example.com").password_hash)


def test_prompted_password_must_match(db_url, monkeypatch):
    main.main(["create-role", "user"])
    answers = iter(["longenough1", "different12"])
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt: next(answers))
    assert main.main(["create-account", "a@example.com", "--role", "user"]) == 1


def test_deactivation_revokes_sessions(db_url, stores):
    main.main(["create-role", "user"])
    main.main(["create-account", "clerk@example.com", "--role", "user", "--password", "longenough1"])
    accounts, tokens = stores
    clerk = accounts.get_by_email("clerk@example.com")
    tokens.put("tok-clerk", clerk.id, None, None, expires_at=utcnow() + timedelta(hours=8))

    assert main.main(["set-status", "clerk@example.com", "inactive"]) == 0
    assert accounts.get_by_id(clerk.id).status == AccountStatus.inactive
    assert tokens.find_by_token("tok-clerk") is None

    assert main.main(["set-status", "clerk@example.com", "active"]) == 0
    assert accounts.get_by_id(clerk.id).is_active


def test_set_status_unknown_account(db_url):
    assert main.main(["set-status", "ghost@example.com", "inactive"]) == 1


def test_purge_tokens(db_url, stores, capsys):
    main.main(["create-role", "user"])
    main.main(["create-account", "clerk@example.com", "--role", "user", "--password", "longenough1"])
    accounts, tokens = stores
    clerk = accounts.get_by_email("clerk@example.com")
    tokens.put("tok-live", clerk.id, None, None, expires_at=utcnow() + timedelta(hours=8))

    assert main.main(["purge-tokens"]) == 0
    assert "Removed 0 expired" in capsys.readouterr().out
    assert tokens.find_by_token("tok-live") is not None
