"""
auth/passwords.py -- One-way password hashing and verification.

bcrypt is used directly (no passlib wrapper). The cost factor comes from
Settings.bcrypt_rounds (12 in production; tests lower it via BCRYPT_ROUNDS).

verify_password() never raises: a malformed hash, a non-ASCII surprise or an
empty string all come back as False, so the login path has exactly one
failure signal to handle.

_DUMMY_HASH enables timing equalization in SessionService.login() so response
time does not reveal whether an email exists [C1].
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt refuses input longer than MAX_PASSWORD_BYTES (UTF-8) with
    ValueError; callers that accept new passwords check the length first.
    """
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("branchdesk_timing_dummy")


def equalize_timing(plain: str) -> None:
    """Burn one bcrypt comparison. Call when there is no real hash to check."""
    verify_password(plain, _DUMMY_HASH)
