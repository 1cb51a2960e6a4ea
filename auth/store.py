"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. AccountStore owns roles and accounts,
TokenStore owns session token records; _row_to_* functions are the mappers.
Route, guard and service code never touches SQL directly.

Both stores take an Engine at construction. The application lifespan builds
one engine and injects it into every store, so all of them share a single
connection pool.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are normalized (strip + lower) on every write and every lookup, so
  "User@Test.com " and "user@test.com" are the same account.

Expired token records are not swept automatically. They are removed when a
request presents them (SessionGuard), on logout, or by the `purge-tokens`
CLI command (TokenStore.delete_expired).

Layer rule: no imports from api/, web/ or audit/.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import Account, AccountStatus, Role, RoleName, TokenRecord
from core.db import from_iso, metadata, to_iso, utcnow

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(30), nullable=False, unique=True),
    Column("description", Text),
    Column("is_system_role", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("employee_id", String(64), unique=True),  # NULL when not linked to an employee
    Column("last_login_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_session_tokens = Table(
    "session_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", Text, nullable=False, unique=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False, index=True),
    Column("device_info", String(512)),
    Column("ip_address", String(64)),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
)

# Read-only joins from audit/ (log entries show the owner's email and role).
accounts_table = _accounts
roles_table = _roles

_MAX_DEVICE_INFO = 512
_MAX_IP = 64


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _account_with_role_columns() -> list:
    """Labeled columns for an account joined to its role.

    Labels avoid the id/created_at/updated_at collisions between the two
    tables and let the same mapper serve AccountStore and TokenStore reads.
    """
    return [
        _accounts.c.id.label("a_id"),
        _accounts.c.email.label("a_email"),
        _accounts.c.password_hash.label("a_password_hash"),
        _accounts.c.status.label("a_status"),
        _accounts.c.role_id.label("a_role_id"),
        _accounts.c.employee_id.label("a_employee_id"),
        _accounts.c.last_login_at.label("a_last_login_at"),
        _accounts.c.created_at.label("a_created_at"),
        _accounts.c.updated_at.label("a_updated_at"),
        _roles.c.id.label("r_id"),
        _roles.c.name.label("r_name"),
        _roles.c.description.label("r_description"),
        _roles.c.is_system_role.label("r_is_system_role"),
        _roles.c.created_at.label("r_created_at"),
        _roles.c.updated_at.label("r_updated_at"),
    ]


def _accounts_joined():
    return select(*_account_with_role_columns()).select_from(
        _accounts.join(_roles, _accounts.c.role_id == _roles.c.id)
    )


# ---------------------------------------------------------------------------
# Accounts and roles
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and Role entities.

    Usage:
        store = AccountStore(engine)
        role_id = store.create_role(Role(name=RoleName.user))
        store.create_account(Account(email="a@b.co", password_hash=hash_password("pw"), role_id=role_id))
        account = store.get_by_email("a@b.co")
    """

    _UPDATABLE_FIELDS: set = {"status", "role_id", "password_hash", "employee_id"}

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine, tables=[_roles, _accounts])

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> int:
        """Insert a role and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the name already exists.
        """
        now = to_iso(utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(
                    name=RoleName(role.name).value,
                    description=role.description,
                    is_system_role=1 if role.is_system_role else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_role_by_name(self, name: RoleName | str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == RoleName(name).value)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.name)).fetchall()
        return [_row_to_role(r) for r in rows]

    def delete_role(self, role_id: int) -> bool:
        """Delete a role. Returns False if it does not exist.

        Raises ValueError for a system role or a role still assigned to at
        least one account.
        """
        role = self.get_role(role_id)
        if role is None:
            return False
        if role.is_system_role:
            raise ValueError(f"Cannot delete system role {role.name.value!r}.")
        with self.engine.connect() as conn:
            in_use = conn.execute(
                select(func.count()).select_from(_accounts).where(_accounts.c.role_id == role_id)
            ).scalar()
            if in_use:
                raise ValueError(f"Role {role.name.value!r} is assigned to {in_use} account(s).")
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its ID.

        Raises ValueError if account.role_id does not reference an existing
        role, and sqlalchemy.exc.IntegrityError if the email is taken.
        """
        if self.get_role(account.role_id) is None:
            raise ValueError(f"Role {account.role_id} does not exist.")
        now = to_iso(utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    email=normalize_email(account.email),
                    password_hash=account.password_hash,
                    status=AccountStatus(account.status).value,
                    role_id=account.role_id,
                    employee_id=account.employee_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account (with its role) by normalized email."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts_joined().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an account (with its role) by primary key."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts_joined().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self) -> list[Account]:
        """Return all accounts, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts_joined().order_by(_accounts.c.created_at.desc())).fetchall()
        return [_row_to_account(r) for r in rows]

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: status, role_id, password_hash, employee_id.
        Unknown fields raise ValueError (fail fast, never reach SQL).

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if "status" in fields:
            fields["status"] = AccountStatus(fields["status"]).value
        if "role_id" in fields and self.get_role(fields["role_id"]) is None:
            raise ValueError(f"Role {fields['role_id']} does not exist.")
        fields["updated_at"] = to_iso(utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, account_id: int, when: datetime | None = None) -> None:
        """Stamp last_login_at after a successful password login."""
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(last_login_at=to_iso(when or utcnow()))
            )
            conn.commit()


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TokenStore:
    """Repository for issued session tokens.

    One record per login. An account may hold any number of records at the
    same time (one per device/browser). Deleting a record revokes the token
    even though its signature and exp claim remain valid.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine, tables=[_roles, _accounts, _session_tokens])

    def put(
        self,
        token: str,
        account_id: int,
        device_info: str | None,
        ip_address: str | None,
        expires_at: datetime,
    ) -> int:
        """Persist one token record and return its ID.

        Raises ValueError if expires_at is not strictly after the issue time.
        """
        issued_at = utcnow()
        if from_iso(to_iso(expires_at)) <= issued_at:
            raise ValueError("Token record must expire after it is issued.")
        with self.engine.connect() as conn:
            result = conn.execute(
                _session_tokens.insert().values(
                    token=token,
                    account_id=account_id,
                    device_info=device_info[:_MAX_DEVICE_INFO] if device_info else None,
                    ip_address=ip_address[:_MAX_IP] if ip_address else None,
                    created_at=to_iso(issued_at),
                    expires_at=to_iso(expires_at),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_by_token(self, token: str) -> TokenRecord | None:
        """Exact-match lookup joined with the owning account and its role."""
        query = (
            select(_session_tokens, *_account_with_role_columns())
            .select_from(
                _session_tokens.join(_accounts, _session_tokens.c.account_id == _accounts.c.id).join(
                    _roles, _accounts.c.role_id == _roles.c.id
                )
            )
            .where(_session_tokens.c.token == token)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        record = _row_to_token(row)
        record.account = _row_to_account(row)
        return record

    def delete_by_token(self, token: str) -> bool:
        """Revoke a token. Idempotent: returns False when nothing matched."""
        with self.engine.connect() as conn:
            result = conn.execute(_session_tokens.delete().where(_session_tokens.c.token == token))
            conn.commit()
        return result.rowcount > 0

    def delete_for_account(self, account_id: int) -> int:
        """Revoke every session of one account. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_session_tokens.delete().where(_session_tokens.c.account_id == account_id))
            conn.commit()
        return result.rowcount

    def list_for_account(self, account_id: int, now: datetime | None = None) -> list[TokenRecord]:
        """Return the account's unexpired token records, newest first."""
        cutoff = to_iso(now or utcnow())
        with self.engine.connect() as conn:
            rows = conn.execute(
                _session_tokens.select()
                .where((_session_tokens.c.account_id == account_id) & (_session_tokens.c.expires_at > cutoff))
                .order_by(_session_tokens.c.created_at.desc())
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def delete_expired(self, now: datetime | None = None) -> int:
        """Remove records whose expires_at has passed. Returns the count."""
        cutoff = to_iso(now or utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(_session_tokens.delete().where(_session_tokens.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=RoleName(row.name),
        description=row.description,
        is_system_role=bool(row.is_system_role),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_account(row) -> Account:
    role = Role(
        id=row.r_id,
        name=RoleName(row.r_name),
        description=row.r_description,
        is_system_role=bool(row.r_is_system_role),
        created_at=row.r_created_at,
        updated_at=row.r_updated_at,
    )
    return Account(
        id=row.a_id,
        email=row.a_email,
        password_hash=row.a_password_hash,
        status=AccountStatus(row.a_status),
        role_id=row.a_role_id,
        role=role,
        employee_id=row.a_employee_id,
        last_login_at=row.a_last_login_at,
        created_at=row.a_created_at,
        updated_at=row.a_updated_at,
    )


def _row_to_token(row) -> TokenRecord:
    return TokenRecord(
        id=row.id,
        token=row.token,
        account_id=row.account_id,
        device_info=row.device_info,
        ip_address=row.ip_address,
        created_at=from_iso(row.created_at),
        expires_at=from_iso(row.expires_at),
    )
