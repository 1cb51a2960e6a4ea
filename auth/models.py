"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data containers). Stores and services do the work;
these types only own the domain shape.

Roles are a closed set (RoleName). Authorization never compares role name
strings -- it asks whether a role grants a Capability via ROLE_CAPABILITIES.

Layer rule: no imports from api/, web/ or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class RoleName(str, Enum):
    admin = "admin"
    manager = "manager"
    user = "user"


class AccountStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class Capability(str, Enum):
    view_dashboard = "view_dashboard"
    manage_accounts = "manage_accounts"
    view_security_logs = "view_security_logs"


ROLE_CAPABILITIES: dict[RoleName, frozenset[Capability]] = {
    RoleName.admin: frozenset(Capability),
    RoleName.manager: frozenset({Capability.view_dashboard}),
    RoleName.user: frozenset({Capability.view_dashboard}),
}


@dataclass
class Role:
    """A named permission bundle. System roles cannot be deleted."""

    name: RoleName
    id: int | None = None
    description: str | None = None
    is_system_role: bool = False
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Account:
    """Login identity for one person in the back office.

    email is always stored lower-case and stripped. employee_id is an opaque
    reference into the employee directory, which this package does not own.
    password_hash never leaves the store/session layer -- response models
    are built from explicit fields, not from this dataclass.
    """

    email: str
    password_hash: str
    role_id: int
    status: AccountStatus = AccountStatus.active
    id: int | None = None
    role: Role | None = None  # populated by joined reads
    employee_id: str | None = None
    last_login_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.active


@dataclass
class TokenRecord:
    """Server-side record of an issued session token.

    The signed token is self-contained; this record exists so a token can be
    revoked before its exp claim. No record -> no session.
    """

    token: str
    account_id: int
    expires_at: datetime
    id: int | None = None
    device_info: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None
    account: Account | None = None  # populated by find_by_token()


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims carried inside a signed session token."""

    account_id: int
    role: RoleName
    status: AccountStatus
    email: str | None = None


@dataclass(frozen=True)
class Principal:
    """The resolved identity attached to an authenticated request."""

    account_id: int
    email: str
    role: RoleName
    status: AccountStatus

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self.role]
